"""出站代理配置。

优先使用 SOCKS 代理（SOCKS_PROXY_HOST + SOCKS_PROXY_PORT），
其次使用 HTTPS_PROXY / ALL_PROXY；都未配置时保持 httpx 默认传输层。

代理通过 transport_factory 注入：客户端每次建立 httpx.Client 时调用一次，
得到一个新的 HTTPTransport。
"""

from typing import Callable, Optional, Protocol

import httpx

from chat_service.config.settings import settings
from chat_service.infrastructure.logging.logger import logger


TransportFactory = Callable[[], httpx.BaseTransport]


class ProxyConfigurable(Protocol):
    transport_factory: Optional[TransportFactory]


def setup_proxy(options: ProxyConfigurable, cfg=None) -> None:
    """按配置为 options 安装代理传输层（原地修改，无返回值）。"""

    cfg = cfg or settings
    if cfg.socks_proxy_host and cfg.socks_proxy_port:
        auth = None
        if cfg.socks_proxy_username:
            auth = (cfg.socks_proxy_username, cfg.socks_proxy_password or "")
        proxy = httpx.Proxy(f"socks5://{cfg.socks_proxy_host}:{cfg.socks_proxy_port}", auth=auth)
        options.transport_factory = lambda: httpx.HTTPTransport(proxy=proxy)
        logger.info("proxy.socks", extra={"extra": {"proxy": socks_proxy_label(cfg)}})
        return

    https_proxy = cfg.https_proxy or cfg.all_proxy
    if https_proxy:
        options.transport_factory = lambda: httpx.HTTPTransport(proxy=https_proxy)
        logger.info("proxy.https", extra={"extra": {"host": httpx.URL(https_proxy).host}})


def socks_proxy_label(cfg=None) -> str:
    cfg = cfg or settings
    if cfg.socks_proxy_host and cfg.socks_proxy_port:
        return f"{cfg.socks_proxy_host}:{cfg.socks_proxy_port}"
    return "-"


def https_proxy_label(cfg=None) -> str:
    cfg = cfg or settings
    return cfg.https_proxy or cfg.all_proxy or "-"
