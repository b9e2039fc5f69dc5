"""
ProxyFetch: Fetch a URL through an authenticated forward proxy
==============================================================

Transports:
  • Plain HTTP   – absolute-URI request forwarded by the proxy
  • HTTPS        – CONNECT tunnel with Proxy-Authorization, then TLS

Cross-platform: Linux · macOS · Windows
"""

__version__ = "1.0.0"
__app_name__ = "ProxyFetch"
