from rest_framework import serializers

TYPES = ['ONLINE', 'OFFLINE']
STATUSES = ['PENDING', 'PAID', 'COMPLETED', 'CANCELLED']


class AppointmentSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1)
    appointmentTime = serializers.DateTimeField()
    type = serializers.ChoiceField(choices=TYPES, required=False, default='OFFLINE')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class AppointmentUpdateSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    appointmentTime = serializers.DateTimeField(required=False)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES)


class AppointmentQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    dateFrom = serializers.DateTimeField(required=False)
    dateTo = serializers.DateTimeField(required=False)
