from typing import Optional, Literal
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field
import logging
from utils import config
from utils.errors import MissingParameterError
from utils.id_generator import BusinessIdGenerator
from utils.wxpay_utils import OrderRequest, PaymentOrderBuilder

logger = logging.getLogger(__name__)

# 定义请求模型
class PayV2Request(BaseModel):
    appId: Optional[str] = None
    appSecret: Optional[str] = None
    mchId: Optional[str] = None
    apiKey: Optional[str] = None
    openId: Optional[str] = None
    notifyUrl: Optional[str] = None
    body: str = '订单支付'
    attach: Optional[str] = None
    outTradeNo: Optional[str] = None
    totalFee: int = Field(default=1, gt=0)
    tradeType: Literal['JSAPI', 'NATIVE', 'APP'] = 'JSAPI'

# 创建路由
router = APIRouter(prefix='/wx/pay', tags=['wxpay'])

@router.post('/v2')
async def post_pay_v2(req: PayV2Request, request: Request):
    """微信支付V2统一下单，返回客户端调起支付参数"""
    if not req.appId or not req.appSecret or not req.mchId or not req.apiKey:
        raise MissingParameterError('appId and appSecret and mchId and apiKey are required')

    notify_url = req.notifyUrl or config.WX_PAY_NOTIFY_URL or f'{request.base_url}wx/pay/v2/notify'
    order = OrderRequest(
        app_id=req.appId,
        mch_id=req.mchId,
        nonce_str=BusinessIdGenerator.generate_nonce_str(req.appId),
        body=req.body,
        attach=req.attach,
        out_trade_no=req.outTradeNo or BusinessIdGenerator.generate_out_trade_no(req.mchId),
        total_fee=req.totalFee,
        notify_url=notify_url,
        openid=req.openId,
        trade_type=req.tradeType,
        spbill_create_ip=request.client.host if request.client else None,
    )

    params = await PaymentOrderBuilder.build_signed_order(req.apiKey, order)
    return {'data': params.model_dump()}

@router.post('/v2/notify')
async def post_pay_v2_notify(request: Request):
    """微信支付V2支付结果通知"""
    body = await request.body()
    data = PaymentOrderBuilder.handle_notification(
        body,
        request.headers.get('content-type', ''),
        dict(request.headers),
        config.WX_PAY_API_KEY,
    )
    return {'data': data}
