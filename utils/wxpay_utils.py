import hashlib
import hmac
import httpx
import logging
import time
from typing import Optional, Dict, Any, Literal

import xmltodict
from pydantic import BaseModel, Field
from xml.parsers.expat import ExpatError

from utils import config
from utils import wechat_utils
from utils.errors import OrderBuildError, MalformedResponseError, WeChatAPIError
from utils.id_generator import BusinessIdGenerator

logger = logging.getLogger(__name__)

SIGN_TYPE = 'MD5'

# OrderRequest 字段 -> 统一下单接口字段
FIELD_MAP = {
    'app_id': 'appid',
    'mch_id': 'mch_id',
    'nonce_str': 'nonce_str',
    'body': 'body',
    'attach': 'attach',
    'out_trade_no': 'out_trade_no',
    'total_fee': 'total_fee',
    'notify_url': 'notify_url',
    'openid': 'openid',
    'trade_type': 'trade_type',
    'spbill_create_ip': 'spbill_create_ip',
}

# 调起支付签名字段，按此顺序拼接
PAY_SIGN_FIELDS = ('appId', 'nonceStr', 'package', 'signType', 'timeStamp')


class OrderRequest(BaseModel):
    """统一下单参数"""
    app_id: str
    mch_id: str
    nonce_str: str = Field(default_factory=BusinessIdGenerator.generate_nonce_str)
    body: str
    attach: Optional[str] = None
    out_trade_no: str
    total_fee: int = Field(gt=0)  # 单位：分
    notify_url: str
    openid: Optional[str] = None
    trade_type: Literal['JSAPI', 'NATIVE', 'APP'] = 'JSAPI'
    spbill_create_ip: Optional[str] = None


class ClientPaymentParams(BaseModel):
    """客户端调起支付所需参数"""
    appId: str
    timeStamp: str
    nonceStr: str
    package: str
    signType: str = SIGN_TYPE
    paySign: str


def build_sign_string(fields: Dict[str, Any], secret_key: str) -> str:
    """按字段名ASCII升序拼接 k=v&...&key=secret_key，空值和sign不参与签名"""
    filtered = {
        k: v for k, v in fields.items()
        if k != 'sign' and v not in (None, '')
    }
    sign_str = ''.join(f'{k}={filtered[k]}&' for k in sorted(filtered))
    return f'{sign_str}key={secret_key}'


def md5_sign(sign_str: str) -> str:
    return hashlib.md5(sign_str.encode('utf-8')).hexdigest()


def build_gateway_payload(order: OrderRequest, secret_key: str) -> Dict[str, str]:
    """将订单参数映射为统一下单字段并签名"""
    payload = {}
    for attr, wire_name in FIELD_MAP.items():
        value = getattr(order, attr)
        if value is None or value == '':
            continue
        payload[wire_name] = str(value)

    payload['sign'] = md5_sign(build_sign_string(payload, secret_key))
    return payload


def build_pay_params(app_id: str, nonce_str: str, prepay_id: str, secret_key: str,
                     timestamp: Optional[str] = None) -> ClientPaymentParams:
    """生成客户端调起支付参数

    paySign 按 appId, nonceStr, package, signType, timeStamp 的固定顺序拼接后追加 key
    """
    values = {
        'appId': app_id,
        'nonceStr': nonce_str,
        'package': f'prepay_id={prepay_id}',
        'signType': SIGN_TYPE,
        'timeStamp': timestamp or str(int(time.time())),
    }
    sign_str = ''.join(f'{k}={values[k]}&' for k in PAY_SIGN_FIELDS) + f'key={secret_key}'

    return ClientPaymentParams(**values, paySign=md5_sign(sign_str))


def dict_to_xml(data: Dict[str, str]) -> str:
    return xmltodict.unparse({'xml': data}, full_document=False)


def xml_to_dict(xml_data) -> Dict[str, Any]:
    """解析微信支付XML（根节点 <xml>）为字典"""
    try:
        parsed = xmltodict.parse(xml_data)
    except ExpatError as e:
        raise MalformedResponseError(f'invalid XML: {str(e)}')

    root = parsed.get('xml')
    if not isinstance(root, dict):
        raise MalformedResponseError('invalid XML: missing <xml> root')
    return root


class PaymentOrderBuilder:
    """微信支付V2 统一下单与支付通知处理

    文档: https://pay.weixin.qq.com/wiki/doc/api/jsapi.php?chapter=9_1
    """

    UNIFIED_ORDER_PATH = '/pay/unifiedorder'

    @staticmethod
    async def build_signed_order(secret_key: str, order: OrderRequest,
                                 timestamp: Optional[str] = None) -> ClientPaymentParams:
        """统一下单并生成客户端调起支付参数

        Raises:
            OrderBuildError: 网络错误、非2xx响应、返回无法解析或缺少prepay_id
        """
        payload = build_gateway_payload(order, secret_key)
        url = f'{config.WX_PAY_BASE_URL}{PaymentOrderBuilder.UNIFIED_ORDER_PATH}'

        try:
            async with wechat_utils.http_client() as client:
                response = await client.post(
                    url,
                    content=dict_to_xml(payload).encode('utf-8'),
                    headers={'Content-Type': 'application/xml'}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            message = wechat_utils.describe_http_error(PaymentOrderBuilder.UNIFIED_ORDER_PATH, e)
            logger.error(f'统一下单请求失败: out_trade_no={order.out_trade_no}, error={message}')
            raise OrderBuildError(message)

        try:
            result = xml_to_dict(response.content)
        except WeChatAPIError as e:
            logger.error(f'统一下单返回无法解析: out_trade_no={order.out_trade_no}')
            raise OrderBuildError(e.message)

        if result.get('return_code') != 'SUCCESS':
            message = result.get('return_msg') or 'return_code is not SUCCESS'
            logger.error(f'统一下单通信失败: out_trade_no={order.out_trade_no}, return_msg={message}')
            raise OrderBuildError(message)

        if result.get('result_code') != 'SUCCESS':
            message = result.get('err_code_des') or result.get('err_code') or 'result_code is not SUCCESS'
            logger.error(f'统一下单业务失败: out_trade_no={order.out_trade_no}, err_code={result.get("err_code")}')
            raise OrderBuildError(message)

        prepay_id = result.get('prepay_id')
        if not prepay_id:
            logger.error(f'统一下单返回缺少prepay_id: out_trade_no={order.out_trade_no}')
            raise OrderBuildError('prepay_id is missing in gateway response')

        logger.info(f'统一下单成功: out_trade_no={order.out_trade_no}')
        return build_pay_params(order.app_id, order.nonce_str, prepay_id, secret_key, timestamp)

    @staticmethod
    def verify_sign(data: Dict[str, Any], secret_key: str) -> bool:
        sign = data.get('sign')
        if not sign or not isinstance(sign, str):
            return False
        # 重复节点或带属性的节点会被解析为 list/dict
        if any(v is not None and not isinstance(v, str) for v in data.values()):
            raise MalformedResponseError('invalid notification: non-scalar field')
        expected = md5_sign(build_sign_string(data, secret_key))
        return hmac.compare_digest(sign.lower().encode('utf-8'), expected.encode('utf-8'))

    @staticmethod
    def handle_notification(raw_body: bytes, content_type: str, headers: Dict[str, str],
                            secret_key: str = '') -> Dict[str, Any]:
        """处理支付结果通知

        XML 请求体解析后原样返回；其他类型原样返回请求头。
        配置了 secret_key 时校验通知签名，未配置时只记录警告。
        """
        if 'xml' not in (content_type or ''):
            return dict(headers)

        data = xml_to_dict(raw_body)
        if not secret_key:
            logger.warning(f"支付通知未校验签名（未配置WX_PAY_API_KEY）: out_trade_no={data.get('out_trade_no')}")
        elif not PaymentOrderBuilder.verify_sign(data, secret_key):
            logger.warning(f"支付通知签名错误: out_trade_no={data.get('out_trade_no')}")
            raise WeChatAPIError('invalid notification sign')
        return data
