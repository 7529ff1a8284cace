from rest_framework import serializers


class CategoryBlogSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    isPublished = serializers.BooleanField(required=False, default=True)


class BlogSerializer(serializers.Serializer):
    title = serializers.CharField(min_length=3, max_length=255)
    content = serializers.CharField()
    imageUrl = serializers.URLField(max_length=500, required=False, allow_blank=True)
    categoryId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    isPublished = serializers.BooleanField(required=False, default=False)


class MeetingRecordSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    title = serializers.CharField(max_length=500)
    content = serializers.CharField()
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField()


class MeetingRecordUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=500, required=False)
    content = serializers.CharField(required=False)
    startTime = serializers.DateTimeField(required=False)
    endTime = serializers.DateTimeField(required=False)
