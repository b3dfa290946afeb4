class WeChatAPIError(Exception):
    """代理接口错误基类，统一映射为 HTTP 400 + {error: message}"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingParameterError(WeChatAPIError):
    """缺少必需参数，在发起任何外部请求之前抛出"""


class UpstreamError(WeChatAPIError):
    """请求微信接口失败（网络错误或非2xx响应）"""


class MalformedResponseError(WeChatAPIError):
    """微信接口返回内容无法解析或缺少预期字段"""


class OrderBuildError(UpstreamError):
    """统一下单失败"""

    def __init__(self, message: str):
        super().__init__(f'order construction failed: {message}')
