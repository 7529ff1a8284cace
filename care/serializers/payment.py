from rest_framework import serializers


class OrderCreateSerializer(serializers.Serializer):
    patientTreatmentId = serializers.IntegerField(min_value=1, required=False)
    appointmentId = serializers.IntegerField(min_value=1, required=False)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if bool(attrs.get('patientTreatmentId')) == bool(attrs.get('appointmentId')):
            raise serializers.ValidationError('Provide exactly one of patientTreatmentId or appointmentId')
        return attrs


class PaymentQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['PENDING', 'SUCCESS', 'FAILED'], required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)
    period = serializers.ChoiceField(choices=['day', 'month'], required=False, default='day')
