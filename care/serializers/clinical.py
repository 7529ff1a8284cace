from rest_framework import serializers


class AdherenceSerializer(serializers.Serializer):
    totalDoses = serializers.FloatField(min_value=0)
    missedDoses = serializers.FloatField(min_value=0)


class LiverPanelSerializer(serializers.Serializer):
    alt = serializers.FloatField(required=False, allow_null=True, min_value=0)
    ast = serializers.FloatField(required=False, allow_null=True, min_value=0)
    bilirubin = serializers.FloatField(required=False, allow_null=True, min_value=0)


class KidneyPanelSerializer(serializers.Serializer):
    egfr = serializers.FloatField(required=False, allow_null=True, min_value=0)
    creatinine = serializers.FloatField(required=False, allow_null=True, min_value=0)


class OrganFunctionSerializer(serializers.Serializer):
    liverFunction = LiverPanelSerializer(required=False)
    kidneyFunction = KidneyPanelSerializer(required=False)


class PregnancySafetySerializer(serializers.Serializer):
    gender = serializers.CharField(max_length=16)
    isPregnant = serializers.BooleanField(required=False, default=False)
    isBreastfeeding = serializers.BooleanField(required=False, default=False)
    protocolId = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class ResistanceSerializer(serializers.Serializer):
    resistanceLevel = serializers.ChoiceField(choices=['none', 'low', 'intermediate', 'high'], default='none')
    mutations = serializers.ListField(child=serializers.CharField(max_length=16), required=False, default=list)
    previousFailedRegimens = serializers.ListField(child=serializers.CharField(max_length=128), required=False,
                                                   default=list)


class EmergencyProtocolSerializer(serializers.Serializer):
    treatmentType = serializers.ChoiceField(choices=['pep', 'prep', 'standard'])
    hoursSinceExposure = serializers.FloatField(required=False, allow_null=True, min_value=0)

    def validate(self, attrs):
        if attrs['treatmentType'] == 'pep' and attrs.get('hoursSinceExposure') is None:
            raise serializers.ValidationError({'hoursSinceExposure': 'Required for PEP'})
        return attrs


class ContinuityQuerySerializer(serializers.Serializer):
    currentStart = serializers.DateTimeField(required=False)
