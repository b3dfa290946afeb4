import hashlib
import secrets
import time
from datetime import datetime
from typing import Optional


class BusinessIdGenerator:
    """业务ID生成器

    生成随机字符串、商户订单号以及小程序码文件名，所有结果只依赖当次请求
    """

    @staticmethod
    def generate_id(business_prefix: str, seed: str, timestamp: Optional[float] = None) -> str:
        """生成唯一的业务ID

        Args:
            business_prefix: 业务前缀，如 'nonce', 'acode' 等
            seed: 与请求相关的种子，如 appId
            timestamp: 时间戳，如果不提供则使用当前时间

        Returns:
            str: 32位小写十六进制ID
        """
        if timestamp is None:
            timestamp = time.time()

        # 业务前缀 + 种子 + 时间戳 + 随机数，避免同一时刻的并发请求冲突
        input_string = f"{business_prefix}:{seed}:{timestamp}:{secrets.token_hex(8)}"

        hash_object = hashlib.md5(input_string.encode('utf-8'))
        return hash_object.hexdigest()

    @staticmethod
    def generate_nonce_str(seed: str = '') -> str:
        """生成微信支付随机字符串（32位，不超过接口限制）"""
        return BusinessIdGenerator.generate_id("nonce", seed)

    @staticmethod
    def generate_out_trade_no(mch_id: str, now: Optional[datetime] = None) -> str:
        """生成商户订单号

        格式为 yyyyMMddHHmmss + 商户号后4位 + 10位随机数字，共不超过32位
        """
        now = now or datetime.now()
        suffix = ''.join(secrets.choice('0123456789') for _ in range(10))
        return f"{now.strftime('%Y%m%d%H%M%S')}{mch_id[-4:]}{suffix}"

    @staticmethod
    def generate_acode_file_name(app_id: str) -> str:
        """生成小程序码图片文件名，每次请求唯一"""
        return f"{BusinessIdGenerator.generate_id('acode', app_id)}.png"
