"""
请求数据序列化器模块

在发送请求前验证请求 data，验证失败时请求通过失败通道结束，不会调用传输层

使用示例:
    # 方式1: 自定义序列化器
    class UserDataSerializer(BaseRequestSerializer):
        def validate(self, data):
            if not data.get("username"):
                raise RequestValidationError("请求参数验证失败", errors={"username": ["用户名不能为空"]})
            return data

    orchestrator = RequestOrchestrator(request_serializer=UserDataSerializer)

    # 方式2: 直接使用 DRF Serializer
    class UserSerializer(serializers.Serializer):
        username = serializers.CharField(max_length=100)

    orchestrator = RequestOrchestrator(request_serializer=DRFRequestSerializer(UserSerializer))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from rest_framework import serializers

from reqflow.exceptions import RequestValidationError


class BaseRequestSerializer(ABC):
    """
    请求数据序列化器基类

    子类需要实现 validate 方法来定义具体的验证逻辑
    """

    @abstractmethod
    def validate(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        验证请求数据

        参数:
            data: 请求选项中的 data 字典

        返回:
            验证通过后的数据（可以在此进行数据转换）

        异常:
            RequestValidationError: 当验证失败时抛出
        """


class DRFRequestSerializer(BaseRequestSerializer):
    """
    Django REST framework 序列化器适配器

    参数:
        serializer_class: DRF Serializer 类或实例（实例只取其类）

    异常:
        RequestValidationError: serializer_class 不是 DRF Serializer 时抛出
    """

    def __init__(self, serializer_class: type[serializers.Serializer] | serializers.Serializer):
        if isinstance(serializer_class, serializers.Serializer):
            serializer_class = serializer_class.__class__
        if not (isinstance(serializer_class, type) and issubclass(serializer_class, serializers.Serializer)):
            raise RequestValidationError(
                f"serializer_class must be a DRF Serializer class or instance, got {type(serializer_class).__name__}"
            )
        self.serializer_class = serializer_class

    def validate(self, data: dict[str, Any]) -> dict[str, Any]:
        serializer = self.serializer_class(data=data)
        if not serializer.is_valid():
            raise RequestValidationError("请求参数验证失败", errors=serializer.errors)
        return dict(serializer.data)
