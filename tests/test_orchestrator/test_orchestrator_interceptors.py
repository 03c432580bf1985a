"""
编排器拦截器流程测试

测试内容:
- 各钩子的调用时机和顺序
- ShortCircuit 提前结束
- 钩子异常处理
- 配置快照与 in-flight 请求
- 请求数据序列化器
"""

import pytest
from rest_framework import serializers

from fakes import FakeTransport, fail_response, ok_response
from reqflow.exceptions import RequestFailure, RequestValidationError
from reqflow.interceptor import ShortCircuit
from reqflow.serializer import DRFRequestSerializer


def recording_interceptor(events, **overrides):
    """构造记录调用顺序的拦截器字典"""

    def on_response(result, state):
        events.append("response")
        state.is_success = result.get("code") == 0

    hooks = {
        "request": lambda config: events.append("request"),
        "prepare": lambda config: events.append("prepare"),
        "response": on_response,
        "fail": lambda res, state: events.append("fail"),
        "complete": lambda res, state: events.append("complete"),
    }
    hooks.update(overrides)
    return hooks


class TestHookOrder:
    """测试钩子调用顺序"""

    @pytest.mark.unit
    def test_success_order(self, make_orchestrator):
        events = []
        api = make_orchestrator(FakeTransport([ok_response({"code": 0, "data": 1})]), interceptor=recording_interceptor(events))

        api.get(url="https://x/").result(timeout=1)

        assert events == ["request", "prepare", "response", "complete"]

    @pytest.mark.unit
    def test_failure_order(self, make_orchestrator):
        events = []
        api = make_orchestrator(FakeTransport([fail_response()]), interceptor=recording_interceptor(events))

        with pytest.raises(RequestFailure):
            api.get(url="https://x/").result(timeout=1)

        assert events == ["request", "prepare", "fail", "complete"]

    @pytest.mark.unit
    def test_request_hook_sees_raw_config_and_prepare_sees_normalized(self, make_orchestrator, fake_transport):
        """request 在规范化之前，prepare 在规范化之后"""
        seen = {}

        def on_request(config):
            seen["request_url"] = config["url"]
            config["header"]["token"] = "my_token"

        def on_prepare(config):
            seen["prepare_url"] = config["url"]
            seen["prepare_header"] = dict(config["header"])

        api = make_orchestrator(
            fake_transport, base_url="https://x/", interceptor={"request": on_request, "prepare": on_prepare}
        )

        api.get(url="/users").result(timeout=1)

        assert seen["request_url"] == "/users"
        assert seen["prepare_url"] == "https://x/users"
        assert seen["prepare_header"]["token"] == "my_token"
        assert fake_transport.last_options["header"]["token"] == "my_token"

    @pytest.mark.unit
    def test_complete_runs_before_settlement(self, make_orchestrator):
        """complete 钩子在结算之前执行，且只执行一次"""
        transport = FakeTransport([ok_response({"code": 0, "data": 1})], hold=True)
        holder = []
        observed = []

        def on_complete(res, state):
            observed.append((holder[0].done(), state.is_settled, state.is_finished))

        api = make_orchestrator(
            transport,
            interceptor={"response": lambda res, state: setattr(state, "is_success", True), "complete": on_complete},
        )
        holder.append(api.get(url="https://x/"))

        transport.release()

        assert holder[0].result(timeout=1) == 1
        assert observed == [(False, True, True)]

    @pytest.mark.unit
    def test_set_config_does_not_affect_in_flight_request(self, make_orchestrator):
        """请求开始后替换拦截器，只影响之后发起的请求"""
        transport = FakeTransport([ok_response({"code": 0, "data": 1})], hold=True)
        api = make_orchestrator(transport)

        future = api.get(url="https://x/")
        api.set_config({"interceptor": {"response": lambda res, state: setattr(state, "is_success", False)}})
        transport.release()

        assert future.result(timeout=1) == 1

    @pytest.mark.unit
    def test_error_alias_for_fail_hook(self, make_orchestrator):
        api = make_orchestrator(FakeTransport([fail_response()]), interceptor={"error": lambda res, state: "handled"})

        with pytest.raises(RequestFailure) as exc_info:
            api.get(url="https://x/").result(timeout=1)

        assert exc_info.value.reason == "handled"


class TestShortCircuit:
    """测试 ShortCircuit 提前结束"""

    @pytest.mark.unit
    def test_request_hook_short_circuit(self, make_orchestrator, fake_transport):
        """request 钩子返回 ShortCircuit 时不调用传输层，complete 仍然执行"""
        events = []
        api = make_orchestrator(
            fake_transport,
            interceptor=recording_interceptor(events, request=lambda config: ShortCircuit({"mock": True})),
        )

        future = api.get(url="https://x/")

        assert future.result(timeout=1) == {"mock": True}
        assert fake_transport.calls == []
        assert events == ["complete"]

    @pytest.mark.unit
    def test_prepare_hook_short_circuit_error(self, make_orchestrator, fake_transport):
        """is_error=True 时通过失败通道交付，不调用 fail 钩子"""
        events = []
        api = make_orchestrator(
            fake_transport,
            interceptor=recording_interceptor(events, prepare=lambda config: ShortCircuit("offline", is_error=True)),
        )

        future = api.get(url="https://x/")

        with pytest.raises(RequestFailure) as exc_info:
            future.result(timeout=1)
        assert exc_info.value.reason == "offline"
        assert fake_transport.calls == []
        assert events == ["request", "complete"]

    @pytest.mark.unit
    def test_response_hook_short_circuit(self, make_orchestrator):
        """response 钩子返回 ShortCircuit 时跳过业务数据提取"""
        envelope = {"code": 0, "data": {"id": 1}}
        api = make_orchestrator(
            FakeTransport([ok_response(envelope)]),
            interceptor={"response": lambda result, state: ShortCircuit(result)},
        )

        assert api.get(url="https://x/").result(timeout=1) == envelope

    @pytest.mark.unit
    def test_fail_hook_recovers(self, make_orchestrator):
        """fail 钩子返回 ShortCircuit 时把失败恢复为成功"""
        api = make_orchestrator(
            FakeTransport([fail_response()]), interceptor={"fail": lambda res, state: ShortCircuit({"cached": True})}
        )

        future = api.get(url="https://x/")

        assert future.result(timeout=1) == {"cached": True}
        assert future.state.is_success is True

    @pytest.mark.unit
    def test_fail_hook_short_circuit_error_replaces_reason(self, make_orchestrator):
        api = make_orchestrator(
            FakeTransport([fail_response()]), interceptor={"fail": lambda res, state: ShortCircuit(None, is_error=True)}
        )

        with pytest.raises(RequestFailure) as exc_info:
            api.get(url="https://x/").result(timeout=1)

        assert exc_info.value.reason is None


class TestHookExceptions:
    """测试钩子异常"""

    @pytest.mark.unit
    @pytest.mark.parametrize("hook_name", ["request", "prepare"])
    def test_pre_send_hook_exception(self, make_orchestrator, fake_transport, hook_name):
        """发送前钩子异常通过失败通道交付，fail 钩子仍然执行"""
        events = []

        def broken(config):
            raise RuntimeError("hook broken")

        api = make_orchestrator(fake_transport, interceptor=recording_interceptor(events, **{hook_name: broken}))

        future = api.get(url="https://x/")

        with pytest.raises(RuntimeError, match="hook broken"):
            future.result(timeout=1)
        assert fake_transport.calls == []
        assert events[-2:] == ["fail", "complete"]

    @pytest.mark.unit
    def test_response_hook_exception(self, make_orchestrator):
        events = []

        def broken(result, state):
            raise KeyError("code")

        api = make_orchestrator(
            FakeTransport([ok_response({"data": 1})]), interceptor=recording_interceptor(events, response=broken)
        )

        with pytest.raises(KeyError):
            api.get(url="https://x/").result(timeout=1)
        assert events == ["request", "prepare", "fail", "complete"]

    @pytest.mark.unit
    def test_fail_hook_exception_keeps_original_reason(self, make_orchestrator, caplog):
        _, res = fail_response()

        def broken(res, state):
            raise RuntimeError("fail hook broken")

        api = make_orchestrator(FakeTransport([(False, res)]), interceptor={"fail": broken})

        with pytest.raises(RequestFailure) as exc_info:
            api.get(url="https://x/").result(timeout=1)
        assert exc_info.value.reason is res
        assert "fail interceptor raised" in caplog.text

    @pytest.mark.unit
    def test_complete_hook_exception_still_settles(self, make_orchestrator, caplog):
        def broken(res, state):
            raise RuntimeError("complete hook broken")

        api = make_orchestrator(FakeTransport([ok_response({"code": 0, "data": 7})]), interceptor={
            "response": lambda res, state: setattr(state, "is_success", True),
            "complete": broken,
        })

        assert api.get(url="https://x/").result(timeout=1) == 7
        assert "complete interceptor raised" in caplog.text


class UserSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=20)
    age = serializers.IntegerField(min_value=0)


class TestRequestSerializer:
    """测试请求数据序列化器"""

    @pytest.mark.unit
    def test_valid_data_is_normalized(self, make_orchestrator, fake_transport):
        api = make_orchestrator(fake_transport)
        api.request_serializer = DRFRequestSerializer(UserSerializer)

        api.post(url="https://x/users", data={"username": "john", "age": "18"}).result(timeout=1)

        assert fake_transport.last_options["data"] == {"username": "john", "age": 18}

    @pytest.mark.unit
    def test_invalid_data_fails_before_send(self, make_orchestrator, fake_transport):
        api = make_orchestrator(fake_transport)
        api.request_serializer = DRFRequestSerializer(UserSerializer)

        future = api.post(url="https://x/users", data={"age": -1})

        with pytest.raises(RequestValidationError) as exc_info:
            future.result(timeout=1)
        assert "username" in exc_info.value.errors
        assert "age" in exc_info.value.errors
        assert fake_transport.calls == []
