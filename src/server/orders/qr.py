from urllib.parse import quote

DEFAULT_QR_SIZE = 280


def build_qr_image_url(qr_content: str | None, size: int = DEFAULT_QR_SIZE) -> str:
    """将二维码内容转为第三方二维码图片地址；内容为空时返回空字符串。"""
    trimmed = (qr_content or "").strip()
    if not trimmed:
        return ""
    return (
        f"https://api.qrserver.com/v1/create-qr-code/?size={size}x{size}"
        f"&data={quote(trimmed, safe='')}"
    )
