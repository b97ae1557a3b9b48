import asyncio
import uuid
from io import BytesIO
from typing import Tuple

import boto3
import structlog
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from core.config import settings


log = structlog.get_logger()

# Definimos o endpoint region-specific, a menos que um host compatível seja configurado
ENDPOINT = settings.S3_ENDPOINT_URL or f"https://s3.{settings.AWS_REGION}.amazonaws.com"

s3_client = boto3.client(
    "s3",
    endpoint_url=ENDPOINT,
    region_name=settings.AWS_REGION,
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    config=Config(signature_version="s3v4")
)

# formatos aceitos -> extensão do objeto salvo
ALLOWED_FORMATS = {"JPEG": "jpg", "PNG": "png", "GIF": "gif"}


class StoredAsset(BaseModel):
    url: str
    key: str
    original_name: str
    size: int
    content_type: str


def public_url(key: str) -> str:
    if settings.ASSET_PUBLIC_BASE_URL:
        return f"{settings.ASSET_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    return f"https://{settings.S3_BUCKET}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"


def fit_image(content: bytes) -> Tuple[bytes, str]:
    """
    Decodifica a imagem e a reduz para caber na caixa IMAGE_MAX_WIDTH x IMAGE_MAX_HEIGHT,
    mantendo a proporção. Imagens menores não são ampliadas e seguem com os bytes originais.

    :return: (bytes a enviar, formato PIL)
    :raises HTTPException: 400 se o conteúdo não for JPEG, PNG ou GIF, ou se declarar
        mais de MAX_IMAGE_PIXELS pixels.
    """
    try:
        # open só lê o cabeçalho; as dimensões são conferidas antes de decodificar
        image = Image.open(BytesIO(content))
        if image.width * image.height > settings.MAX_IMAGE_PIXELS:
            raise HTTPException(status_code=400, detail="Image too large")
        fmt = image.format
        if fmt not in ALLOWED_FORMATS:
            raise HTTPException(status_code=400, detail="Unsupported image format")
        image.load()
    except Image.DecompressionBombError:
        raise HTTPException(status_code=400, detail="Image too large")
    except (UnidentifiedImageError, OSError):
        raise HTTPException(status_code=400, detail="Unsupported image format")

    box = (settings.IMAGE_MAX_WIDTH, settings.IMAGE_MAX_HEIGHT)
    if image.width <= box[0] and image.height <= box[1]:
        return content, fmt

    image.thumbnail(box, Image.Resampling.LANCZOS)
    out = BytesIO()
    image.save(out, format=fmt)
    return out.getvalue(), fmt


def _put_object(body: bytes, key: str, content_type: str):
    s3_client.upload_fileobj(
        BytesIO(body),
        settings.S3_BUCKET,
        key,
        ExtraArgs={
            "ContentType": content_type
        }
    )


async def upload_payment_screenshot(file: UploadFile) -> StoredAsset:
    """
    Valida, redimensiona e envia o comprovante para o bucket, dentro de ASSET_FOLDER.

    Tipo e tamanho são conferidos antes de qualquer chamada de rede.
    """
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large")

    # nunca bufferiza mais que o limite + 1 byte
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large")

    body, fmt = await asyncio.to_thread(fit_image, content)
    key = f"{settings.ASSET_FOLDER}/{uuid.uuid4().hex}.{ALLOWED_FORMATS[fmt]}"
    # o tipo salvo é o detectado pelo Pillow, não o declarado pelo cliente
    content_type = Image.MIME.get(fmt, content_type)

    try:
        await asyncio.to_thread(_put_object, body, key, content_type)
    except (BotoCoreError, ClientError) as e:
        log.error("asset.upload_failed", key=key, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    log.info("asset.uploaded", key=key, size=len(body), original=file.filename)
    return StoredAsset(
        url=public_url(key),
        key=key,
        original_name=file.filename or "",
        size=len(body),
        content_type=content_type,
    )


async def delete_asset(key: str) -> bool:
    """Remoção best-effort: falhas são apenas logadas, nunca repetidas."""
    try:
        await asyncio.to_thread(s3_client.delete_object, Bucket=settings.S3_BUCKET, Key=key)
    except (BotoCoreError, ClientError) as e:
        log.error("asset.cleanup_failed", key=key, error=str(e))
        return False
    log.info("asset.deleted", key=key)
    return True
