import httpx
import json
import logging
from pathlib import Path
from typing import Dict, Any

from utils import config
from utils.errors import UpstreamError, MalformedResponseError
from utils.id_generator import BusinessIdGenerator

logger = logging.getLogger(__name__)

# 小程序码版本
ENV_VERSIONS = ('release', 'trial', 'develop')


def describe_http_error(path: str, e: httpx.HTTPError) -> str:
    """生成不含请求URL的错误信息，URL中带有secret/access_token"""
    if isinstance(e, httpx.HTTPStatusError):
        return f'{path}: HTTP {e.response.status_code}'
    return f'{path}: {type(e).__name__}'


def http_client() -> httpx.AsyncClient:
    """创建异步HTTP客户端，每次外部请求单独创建"""
    return httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)


class WeChatAPI:
    """微信API工具类"""

    @staticmethod
    async def get_access_token(app_id: str, app_secret: str) -> Dict[str, Any]:
        """获取接口调用凭据(access_token)，微信返回的内容原样返回

        文档: https://developers.weixin.qq.com/miniprogram/dev/OpenApiDoc/mp-access-token/getAccessToken.html
        """
        params = {
            'grant_type': 'client_credential',
            'appid': app_id,
            'secret': app_secret
        }
        return await WeChatAPI._get_json('/cgi-bin/token', params)

    @staticmethod
    async def get_open_id(app_id: str, app_secret: str, code: str) -> Dict[str, Any]:
        """通过小程序登录code换取openid和session_key，微信返回的内容原样返回

        文档: https://developers.weixin.qq.com/miniprogram/dev/OpenApiDoc/user-login/code2Session.html
        """
        params = {
            'appid': app_id,
            'secret': app_secret,
            'js_code': code,
            'grant_type': 'authorization_code'
        }
        return await WeChatAPI._get_json('/sns/jscode2session', params)

    @staticmethod
    async def get_wxacode_unlimit(app_id: str, app_secret: str, page: str, scene: str,
                                  env_version: str = 'release') -> Dict[str, Any]:
        """获取不限制的小程序码并保存为静态图片

        文档: https://developers.weixin.qq.com/miniprogram/dev/OpenApiDoc/qrcode-link/qr-code/getUnlimitedQRCode.html

        Returns:
            dict: 成功时为 {'url': '/images/<文件名>.png'}；
                  微信返回错误（含errcode）时原样返回该错误JSON，调用方据 'errcode' 区分
        """
        token = await WeChatAPI.get_access_token(app_id, app_secret)
        access_token = token.get('access_token')
        if not access_token:
            logger.warning(f"获取access_token失败，原样返回: errcode={token.get('errcode')}")
            return token

        payload = {
            'scene': scene,
            'page': page,
            'env_version': env_version
        }
        path = '/wxa/getwxacodeunlimit'
        url = f'{config.WX_API_BASE_URL}{path}'
        try:
            async with http_client() as client:
                response = await client.post(url, params={'access_token': access_token}, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            message = describe_http_error(path, e)
            logger.error(f'请求小程序码接口失败: {message}')
            raise UpstreamError(message)

        content = response.content
        # 失败时微信返回JSON而不是图片
        error = WeChatAPI._parse_error_body(content, response.headers.get('content-type', ''))
        if error is not None:
            logger.warning(f"小程序码接口返回错误: errcode={error.get('errcode')}, errmsg={error.get('errmsg')}")
            return error

        file_name = BusinessIdGenerator.generate_acode_file_name(app_id)
        images_dir = Path(config.STATIC_DIR) / config.IMAGES_SUBDIR
        images_dir.mkdir(parents=True, exist_ok=True)
        (images_dir / file_name).write_bytes(content)
        logger.info(f'小程序码已保存: {file_name} ({len(content)} bytes)')

        return {'url': f'/{config.IMAGES_SUBDIR}/{file_name}'}

    @staticmethod
    async def _get_json(path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f'{config.WX_API_BASE_URL}{path}'
        try:
            async with http_client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
        except httpx.HTTPError as e:
            message = describe_http_error(path, e)
            logger.error(f'请求微信API失败: {message}')
            raise UpstreamError(message)

        try:
            return response.json()
        except ValueError:
            logger.error(f'微信API返回内容不是JSON: {path}')
            raise MalformedResponseError(f'invalid JSON response from {path}')

    @staticmethod
    def _parse_error_body(content: bytes, content_type: str):
        """返回体是JSON时解析返回（必须含errcode），图片返回None"""
        if 'json' not in content_type and not content.lstrip().startswith(b'{'):
            return None
        try:
            data = json.loads(content.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            raise MalformedResponseError('invalid error response from getwxacodeunlimit')
        if not isinstance(data, dict) or 'errcode' not in data:
            raise MalformedResponseError('unexpected JSON response from getwxacodeunlimit')
        return data
