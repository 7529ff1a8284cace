from rest_framework import serializers

from care.models import DoctorSchedule

SHIFTS = [DoctorSchedule.SHIFT_MORNING, DoctorSchedule.SHIFT_AFTERNOON]


class DoctorCreateSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1)
    specialization = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    certifications = serializers.ListField(child=serializers.CharField(max_length=255), required=False,
                                           default=list)
    isAvailable = serializers.BooleanField(required=False, default=True)


class DoctorUpdateSerializer(serializers.Serializer):
    specialization = serializers.CharField(max_length=255, required=False, allow_blank=True)
    certifications = serializers.ListField(child=serializers.CharField(max_length=255), required=False)
    isAvailable = serializers.BooleanField(required=False)


class DateRangeQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)


class GenerateScheduleSerializer(serializers.Serializer):
    doctorsPerShift = serializers.IntegerField(min_value=1, required=False)
    startDate = serializers.DateField(required=False)
    seed = serializers.IntegerField(required=False)


class ShiftRefSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.DateField()
    shift = serializers.ChoiceField(choices=SHIFTS)


class TimeOffSerializer(serializers.Serializer):
    date = serializers.DateField()
    shift = serializers.ChoiceField(choices=SHIFTS)


class ManualAssignSerializer(serializers.Serializer):
    date = serializers.DateField()
    shift = serializers.ChoiceField(choices=SHIFTS)
    doctorIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    doctorsPerShift = serializers.IntegerField(min_value=1, required=False)


class SwapShiftSerializer(serializers.Serializer):
    doctor1 = ShiftRefSerializer()
    doctor2 = ShiftRefSerializer()


class DayQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
