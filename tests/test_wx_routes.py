"""access_token / openid / 小程序码接口测试"""
import json
import logging

import httpx
import pytest

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 32


def _unexpected(request):
    raise AssertionError(f'unexpected outbound call: {request.url}')


class TestAccessToken:
    """access_token 接口测试"""

    @pytest.mark.parametrize('path', ['/wx/mp', '/api/wx/mp'])
    def test_relays_token(self, client, mock_wechat, path):
        calls = mock_wechat(lambda request: httpx.Response(200, json={'access_token': 'TOKEN', 'expires_in': 7200}))

        response = client.get(path, params={'appId': 'wx1', 'appSecret': 's1'})

        assert response.status_code == 200
        assert response.json() == {'data': {'access_token': 'TOKEN', 'expires_in': 7200}}
        assert calls[0].url.path == '/cgi-bin/token'
        assert calls[0].url.params['appid'] == 'wx1'
        assert calls[0].url.params['secret'] == 's1'
        assert calls[0].url.params['grant_type'] == 'client_credential'

    @pytest.mark.parametrize('params', [{}, {'appId': 'wx1'}, {'appSecret': 's1'}, {'appId': '', 'appSecret': 's1'}])
    def test_missing_params(self, client, mock_wechat, params):
        calls = mock_wechat(_unexpected)

        response = client.get('/wx/mp', params=params)

        assert response.status_code == 400
        assert response.json() == {'error': 'appId and appSecret are required'}
        assert calls == []

    def test_upstream_error(self, client, mock_wechat):
        mock_wechat(lambda request: httpx.Response(503, text='unavailable'))

        response = client.get('/wx/mp', params={'appId': 'wx1', 'appSecret': 's1'})

        assert response.status_code == 400
        assert '503' in response.json()['error']

    def test_upstream_error_hides_secret(self, client, mock_wechat, caplog):
        mock_wechat(lambda request: httpx.Response(503, text='unavailable'))

        with caplog.at_level(logging.ERROR):
            response = client.get('/wx/mp', params={'appId': 'wx1', 'appSecret': 'TOPSECRET'})

        assert response.status_code == 400
        assert response.json() == {'error': '/cgi-bin/token: HTTP 503'}
        assert 'TOPSECRET' not in caplog.text
        assert '/cgi-bin/token: HTTP 503' in caplog.text

    def test_network_error_hides_secret(self, client, mock_wechat, caplog):
        def _raise(request):
            raise httpx.ConnectError(f'failed: {request.url}', request=request)

        mock_wechat(_raise)

        with caplog.at_level(logging.ERROR):
            response = client.get('/wx/openid', params={'appId': 'wx1', 'appSecret': 'TOPSECRET', 'code': 'c1'})

        assert response.status_code == 400
        assert response.json() == {'error': '/sns/jscode2session: ConnectError'}
        assert 'TOPSECRET' not in caplog.text

    def test_wechat_error_json_relayed(self, client, mock_wechat):
        mock_wechat(lambda request: httpx.Response(200, json={'errcode': 40013, 'errmsg': 'invalid appid'}))

        response = client.get('/wx/mp', params={'appId': 'bad', 'appSecret': 's1'})

        assert response.status_code == 200
        assert response.json() == {'data': {'errcode': 40013, 'errmsg': 'invalid appid'}}


class TestOpenId:
    """code2Session 接口测试"""

    def test_relays_session(self, client, mock_wechat):
        calls = mock_wechat(lambda request: httpx.Response(200, json={'openid': 'OPENID', 'session_key': 'KEY'}))

        response = client.get('/wx/openid', params={'appId': 'wx1', 'appSecret': 's1', 'code': 'c1'})

        assert response.status_code == 200
        assert response.json() == {'data': {'openid': 'OPENID', 'session_key': 'KEY'}}
        assert calls[0].url.path == '/sns/jscode2session'
        assert calls[0].url.params['js_code'] == 'c1'
        assert calls[0].url.params['grant_type'] == 'authorization_code'

    def test_missing_code(self, client, mock_wechat):
        calls = mock_wechat(_unexpected)

        response = client.get('/api/wx/openid', params={'appId': 'wx1', 'appSecret': 's1'})

        assert response.status_code == 400
        assert response.json() == {'error': 'appId and appSecret and code are required'}
        assert calls == []

    def test_malformed_response(self, client, mock_wechat):
        mock_wechat(lambda request: httpx.Response(200, text='<html>oops</html>'))

        response = client.get('/wx/openid', params={'appId': 'wx1', 'appSecret': 's1', 'code': 'c1'})

        assert response.status_code == 400
        assert 'invalid JSON' in response.json()['error']


class TestACode:
    """小程序码接口测试"""

    BODY = {'appId': 'wx1', 'appSecret': 's1', 'page': 'pages/index/index', 'scene': 'id=1'}

    def _handler(self, acode_response):
        def handler(request):
            if request.url.path == '/cgi-bin/token':
                return httpx.Response(200, json={'access_token': 'TOKEN', 'expires_in': 7200})
            if request.url.path == '/wxa/getwxacodeunlimit':
                return acode_response
            raise AssertionError(f'unexpected path: {request.url.path}')
        return handler

    def test_writes_image(self, client, mock_wechat, static_dir):
        calls = mock_wechat(self._handler(httpx.Response(200, content=PNG_BYTES, headers={'content-type': 'image/jpeg'})))

        response = client.post('/wx/acode', json=self.BODY)

        assert response.status_code == 200
        url = response.json()['data']['url']
        assert url.startswith('/images/') and url.endswith('.png')
        assert (static_dir / url.lstrip('/')).read_bytes() == PNG_BYTES

        acode_request = calls[1]
        assert acode_request.url.params['access_token'] == 'TOKEN'
        assert json.loads(acode_request.content) == {
            'scene': 'id=1', 'page': 'pages/index/index', 'env_version': 'release'
        }

    def test_each_request_gets_own_file(self, client, mock_wechat, static_dir):
        mock_wechat(self._handler(httpx.Response(200, content=PNG_BYTES, headers={'content-type': 'image/jpeg'})))

        first = client.post('/wx/acode', json=self.BODY).json()['data']['url']
        second = client.post('/wx/acode', json=self.BODY).json()['data']['url']

        assert first != second
        assert len(list((static_dir / 'images').iterdir())) == 2

    def test_errcode_relayed_as_is(self, client, mock_wechat, static_dir):
        error = {'errcode': 41030, 'errmsg': 'invalid page'}
        mock_wechat(self._handler(httpx.Response(200, json=error)))

        response = client.post('/wx/acode', json=self.BODY)

        assert response.status_code == 200
        assert response.json() == error
        assert not (static_dir / 'images').exists()

    def test_token_error_relayed(self, client, mock_wechat, static_dir):
        error = {'errcode': 40125, 'errmsg': 'invalid appsecret'}
        calls = mock_wechat(lambda request: httpx.Response(200, json=error))

        response = client.post('/wx/acode', json=self.BODY)

        assert response.json() == error
        assert len(calls) == 1

    def test_upstream_error_hides_access_token(self, client, mock_wechat, static_dir, caplog):
        mock_wechat(self._handler(httpx.Response(500, text='error')))

        with caplog.at_level(logging.ERROR):
            response = client.post('/wx/acode', json=self.BODY)

        assert response.status_code == 400
        assert response.json() == {'error': '/wxa/getwxacodeunlimit: HTTP 500'}
        assert 'TOKEN' not in response.json()['error']
        assert 'access_token=TOKEN' not in caplog.text

    def test_json_without_errcode_not_saved(self, client, mock_wechat, static_dir):
        mock_wechat(self._handler(httpx.Response(200, json={'msg': 'unexpected'})))

        response = client.post('/wx/acode', json=self.BODY)

        assert response.status_code == 400
        assert 'unexpected JSON' in response.json()['error']
        assert not (static_dir / 'images').exists()

    @pytest.mark.parametrize('missing', ['appId', 'appSecret', 'page', 'scene'])
    def test_missing_params(self, client, mock_wechat, missing):
        calls = mock_wechat(_unexpected)
        body = {k: v for k, v in self.BODY.items() if k != missing}

        response = client.post('/wx/acode', json=body)

        assert response.status_code == 400
        assert 'required' in response.json()['error']
        assert calls == []

    def test_invalid_env_version(self, client, mock_wechat):
        calls = mock_wechat(_unexpected)

        response = client.post('/wx/acode', json={**self.BODY, 'env_version': 'beta'})

        assert response.status_code == 400
        assert 'env_version' in response.json()['error']
        assert calls == []


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json()['status'] == 'ok'


def test_httpx_request_logging_suppressed():
    """httpx 的请求日志包含完整URL，不应在 INFO 级别输出"""
    assert logging.getLogger('httpx').getEffectiveLevel() >= logging.WARNING
