"""测试公共夹具"""
import httpx
import pytest
from fastapi.testclient import TestClient

from app import app
from utils import config
from utils import wechat_utils


@pytest.fixture
def client():
    """创建测试客户端"""
    return TestClient(app)


@pytest.fixture
def static_dir(tmp_path, monkeypatch):
    """小程序码图片写入临时目录"""
    monkeypatch.setattr(config, 'STATIC_DIR', str(tmp_path))
    return tmp_path


@pytest.fixture
def mock_wechat(monkeypatch):
    """用 httpx.MockTransport 替换外部请求，返回记录到的请求列表

    用法: calls = mock_wechat(handler)，handler 接收 httpx.Request 返回 httpx.Response
    """
    def _install(handler):
        calls = []

        def _record(request):
            calls.append(request)
            return handler(request)

        monkeypatch.setattr(
            wechat_utils,
            'http_client',
            lambda: httpx.AsyncClient(transport=httpx.MockTransport(_record))
        )
        return calls

    return _install
