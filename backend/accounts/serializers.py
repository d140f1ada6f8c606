from rest_framework import serializers
from django.contrib.auth import authenticate
from django.db import transaction

from .models import User
from drivers.models import DriverProfile


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "email", "role", "phone_number"]
        read_only_fields = ["id", "role"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=6)
    role = serializers.ChoiceField(choices=[User.ROLE_PASSENGER, User.ROLE_DRIVER], default=User.ROLE_PASSENGER)
    vehicle_type = serializers.CharField(required=False, max_length=30)
    vehicle_number = serializers.CharField(required=False, max_length=20)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'role', 'phone_number', 'vehicle_type', 'vehicle_number']

    def validate_vehicle_number(self, value):
        if DriverProfile.objects.filter(vehicle_number=value).exists():
            raise serializers.ValidationError("Vehicle number already registered")
        return value

    def validate(self, data):
        # Drivers are matched by vehicle type, so both fields are required
        if data.get('role') == User.ROLE_DRIVER:
            missing = {
                field: 'This field is required for drivers'
                for field in ('vehicle_type', 'vehicle_number') if not data.get(field)
            }
            if missing:
                raise serializers.ValidationError(missing)
        return data

    @transaction.atomic
    def create(self, validated_data):
        vehicle_type = validated_data.pop('vehicle_type', None)
        vehicle_number = validated_data.pop('vehicle_number', None)

        user = User.objects.create_user(
            username=validated_data['username'],
            email=validated_data.get('email', ''),
            password=validated_data['password'],
            role=validated_data['role'],
            phone_number=validated_data.get('phone_number', ''),
        )

        if user.role == User.ROLE_DRIVER:
            DriverProfile.objects.create(
                user=user,
                vehicle_type=vehicle_type,
                vehicle_number=vehicle_number,
            )

        return user
