from fastapi import Request
import user_agents

def get_client_ip(request: Request) -> str | None:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return request.client.host if request.client else None

def parse_user_agent(ua: str | None):
    if not ua:
        return None
    ua_p = user_agents.parse(ua)
    return {
        "os": ua_p.os.family,
        "os_version": ua_p.os.version_string,
        "browser": ua_p.browser.family,
        "browser_version": ua_p.browser.version_string,
        "device": ua_p.device.family,
        "is_mobile": ua_p.is_mobile,
        "is_tablet": ua_p.is_tablet,
        "is_pc": ua_p.is_pc,
    }

def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()

def safe_redirect_url(url: str | None, default: str = "/") -> str:
    # local paths only; "//host" and absolute urls are open redirects
    if not url or not url.startswith("/") or url.startswith("//") or "\\" in url:
        return default
    return url
