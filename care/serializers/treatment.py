from rest_framework import serializers

from care.services.treatments import STATUS_ACTIVE, STATUS_COMPLETED, STATUS_DISCONTINUED


class TreatmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[STATUS_ACTIVE, STATUS_COMPLETED, STATUS_DISCONTINUED])


class BulkCreateSerializer(serializers.Serializer):
    items = serializers.ListField(child=serializers.DictField(), allow_empty=False)
    continueOnError = serializers.BooleanField(required=False, default=False)
    validateBeforeCreate = serializers.BooleanField(required=False, default=True)


class FixViolationsSerializer(serializers.Serializer):
    dryRun = serializers.BooleanField(required=False, default=True)
