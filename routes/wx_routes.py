from typing import Optional
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging
from utils.errors import MissingParameterError, WeChatAPIError
from utils.wechat_utils import WeChatAPI, ENV_VERSIONS

logger = logging.getLogger(__name__)

# 定义请求模型
class ACodeRequest(BaseModel):
    appId: Optional[str] = None
    appSecret: Optional[str] = None
    page: Optional[str] = None
    scene: Optional[str] = None
    env_version: str = 'release'

# 创建路由
router = APIRouter(prefix='/wx', tags=['wechat'])
# 兼容 /api/wx 路径下的旧接口
legacy_router = APIRouter(prefix='/api/wx', tags=['wechat'])

async def get_mp_access_token(appId: Optional[str] = None, appSecret: Optional[str] = None):
    """获取公众号/小程序接口调用凭据(access_token)"""
    if not appId or not appSecret:
        raise MissingParameterError('appId and appSecret are required')

    data = await WeChatAPI.get_access_token(appId, appSecret)
    return {'data': data}

async def get_mp_open_id(appId: Optional[str] = None, appSecret: Optional[str] = None,
                         code: Optional[str] = None):
    """通过小程序登录code获取openid和session_key"""
    if not appId or not appSecret or not code:
        raise MissingParameterError('appId and appSecret and code are required')

    data = await WeChatAPI.get_open_id(appId, appSecret, code)
    return {'data': data}

for _router in (router, legacy_router):
    _router.add_api_route('/mp', get_mp_access_token, methods=['GET'])
    _router.add_api_route('/openid', get_mp_open_id, methods=['GET'])

@router.post('/acode')
async def post_mp_acode(req: ACodeRequest):
    """生成不限制数量的小程序码"""
    if not req.appId or not req.appSecret or not req.page or not req.scene:
        raise MissingParameterError('appId and appSecret and page and scene are required')
    if req.env_version not in ENV_VERSIONS:
        raise WeChatAPIError(f'env_version must be one of: {", ".join(ENV_VERSIONS)}')

    data = await WeChatAPI.get_wxacode_unlimit(
        req.appId, req.appSecret, req.page, req.scene, req.env_version
    )
    if 'errcode' in data:
        # 微信错误原样返回
        return JSONResponse(content=data)
    return {'data': data}
