from rest_framework import serializers

from care.models import DurationUnit, MedSchedule


class ProtocolMedicineSerializer(serializers.Serializer):
    medicineId = serializers.IntegerField(min_value=1)
    dosage = serializers.CharField(max_length=100)
    durationValue = serializers.IntegerField(min_value=1, required=False, default=1)
    durationUnit = serializers.ChoiceField(choices=DurationUnit.values, required=False, default=DurationUnit.DAY)
    schedule = serializers.ChoiceField(choices=MedSchedule.values, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ProtocolMedicineUpdateSerializer(serializers.Serializer):
    dosage = serializers.CharField(max_length=100, required=False)
    durationValue = serializers.IntegerField(min_value=1, required=False)
    durationUnit = serializers.ChoiceField(choices=DurationUnit.values, required=False)
    schedule = serializers.ChoiceField(choices=MedSchedule.values, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class ProtocolSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    targetDisease = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    medicines = ProtocolMedicineSerializer(many=True, required=False)


class ProtocolCloneSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)


class MedicineSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    unit = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    dose = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class MedicineQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False)
    minPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    maxPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
