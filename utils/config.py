import os
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

# 微信接口地址
WX_API_BASE_URL = os.environ.get('WX_API_BASE_URL', 'https://api.weixin.qq.com').rstrip('/')
WX_PAY_BASE_URL = os.environ.get('WX_PAY_BASE_URL', 'https://api.mch.weixin.qq.com').rstrip('/')

# 外部请求超时（秒）
HTTP_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT', 10))

# 静态文件目录，小程序码图片保存在 STATIC_DIR/images 下
STATIC_DIR = os.environ.get('STATIC_DIR', 'public')
IMAGES_SUBDIR = 'images'

# 微信支付V2
WX_PAY_NOTIFY_URL = os.environ.get('WX_PAY_NOTIFY_URL', '')
# 配置后才会校验支付通知签名
WX_PAY_API_KEY = os.environ.get('WX_PAY_API_KEY', '')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
