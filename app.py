from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from pathlib import Path
import os
import logging

# 加载配置（同时加载 .env）
from utils import config

# 配置日志
logging.basicConfig(level=config.LOG_LEVEL)
# httpx 在 INFO 级别记录完整请求URL（含secret/access_token）
logging.getLogger('httpx').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# 导入路由
from utils.errors import WeChatAPIError
from routes.wx_routes import router as wx_router, legacy_router as wx_legacy_router
from routes.pay_routes import router as pay_router

IMAGES_DIR = Path(config.STATIC_DIR) / config.IMAGES_SUBDIR

# 定义应用生命周期
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 启动：创建小程序码图片目录
    IMAGES_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f'应用启动，静态图片目录: {IMAGES_DIR}')
    yield
    logger.info('应用关闭')

# 创建FastAPI应用
app = FastAPI(
    title='WeChat API Proxy',
    description='WeChat access token / openid / mini-program code / WeChat Pay V2 proxy API',
    version='1.0.0',
    lifespan=lifespan
)

# 添加CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

# 注册路由
app.include_router(wx_router)
app.include_router(wx_legacy_router)
app.include_router(pay_router)

# 小程序码图片静态访问
app.mount('/images', StaticFiles(directory=str(IMAGES_DIR), check_dir=False), name='images')

# 健康检查接口
@app.get('/health')
async def health_check():
    """健康检查接口"""
    return {
        'status': 'ok',
        'message': 'API服务运行正常'
    }

# 自定义异常处理
@app.exception_handler(WeChatAPIError)
async def wechat_api_exception_handler(request, exc):
    """参数缺失、微信接口失败等统一返回 400 + {error}"""
    return JSONResponse(status_code=exc.status_code, content={'error': exc.message})

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """请求参数格式错误"""
    messages = []
    for err in exc.errors():
        field = '.'.join(str(loc) for loc in err.get('loc', ()) if loc not in ('body', 'query'))
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get('msg')))
    message = '; '.join(messages) or 'invalid request'
    return JSONResponse(status_code=400, content={'error': message})

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """统一处理HTTP异常"""
    return JSONResponse(status_code=exc.status_code, content={'error': str(exc.detail)})

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """统一处理未捕获异常"""
    logger.exception(f'未捕获异常: {str(exc)}')
    return JSONResponse(status_code=500, content={'error': str(exc)})

if __name__ == '__main__':
    import uvicorn
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('DEBUG') == 'True'
    uvicorn.run('app:app', host='0.0.0.0', port=port, reload=debug)
