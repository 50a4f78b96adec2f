import asyncio
import copy

import httpx
import structlog

from .breaker import CircuitBreaker
from .config import settings
from .redis_client import redis_client

logger = structlog.get_logger(__name__)

PROPERTY_FIELDS = ("name", "description", "amenities", "location", "state", "property_type")
BOOKING_FIELDS = ("payment_instruction", "property.name", "property.description", "property.location")
FEEDBACK_FIELDS = ("comment",)

BACKOFF_SECONDS = 0.5

cb_translation = CircuitBreaker("translation-service", redis_client, failure_threshold=5, reset_timeout_seconds=30)


class TranslationError(Exception):
    pass


def _resolve(entity: dict, path: str):
    node = entity
    *parents, field = path.split(".")
    for key in parents:
        node = node.get(key) if isinstance(node, dict) else None
    if not isinstance(node, dict):
        return None, field
    return node, field


def extract_segments(entity: dict, fields) -> list[tuple[str, int | None, str]]:
    """(path, list index or None, text) for every non-empty translatable string."""
    segments = []
    for path in fields:
        node, field = _resolve(entity, path)
        if node is None:
            continue
        value = node.get(field)
        if isinstance(value, str) and value.strip():
            segments.append((path, None, value))
        elif isinstance(value, list):
            for i, item in enumerate(value):
                if isinstance(item, str) and item.strip():
                    segments.append((path, i, item))
    return segments


def splice(entity: dict, segments, translated: list[str]) -> dict:
    result = copy.deepcopy(entity)
    for (path, index, _), text in zip(segments, translated):
        node, field = _resolve(result, path)
        if index is None:
            node[field] = text
        else:
            node[field][index] = text
    return result


async def translate_text(client: httpx.AsyncClient, text: str, target: str) -> str:
    await cb_translation.allow_request()

    payload = {"q": text, "source": "auto", "target": target, "format": "text"}
    attempts = settings.translation_retries + 1

    error = "translation failed"
    for attempt in range(attempts):
        try:
            resp = await client.post(settings.translation_url, json=payload)
            resp.raise_for_status()
        except (httpx.TimeoutException, httpx.TransportError) as e:
            error = f"translation service unreachable: {e}"
        except httpx.HTTPStatusError as e:
            error = f"translation service answered {e.response.status_code}"
            # only server-side errors are worth retrying
            if e.response.status_code < 500:
                break
        else:
            data = resp.json()
            translated = data.get("translatedText") if isinstance(data, dict) else None
            if not isinstance(translated, str):
                error = "translation response has no translatedText"
                break
            await cb_translation.record_success()
            return translated

        if attempt + 1 < attempts:
            await asyncio.sleep(BACKOFF_SECONDS * (2 ** attempt))

    # one failed request counts once, however many attempts it took
    await cb_translation.record_failure()
    raise TranslationError(error)


async def translate_entity(client: httpx.AsyncClient, entity: dict, fields, target: str) -> dict:
    """Translated copy of ``entity``; the original on any failure."""
    segments = extract_segments(entity, fields)
    if not segments:
        return entity

    texts = [text for _, _, text in segments]
    line_counts = [text.count("\n") + 1 for text in texts]

    try:
        translated = await translate_text(client, "\n".join(texts), target)
        lines = translated.split("\n")
        if len(lines) != sum(line_counts):
            raise TranslationError(f"expected {sum(line_counts)} lines, got {len(lines)}")

        regrouped = []
        pos = 0
        for count in line_counts:
            regrouped.append("\n".join(lines[pos:pos + count]))
            pos += count
        return splice(entity, segments, regrouped)
    except Exception as e:
        logger.warning("translation_failed", target=target, entity_id=entity.get("id"), error=str(e))
        return entity


async def translate_many(entities: list[dict], fields, target: str | None) -> list[dict]:
    if not target or not entities:
        return entities

    async with httpx.AsyncClient(timeout=settings.translation_timeout) as client:
        return list(
            await asyncio.gather(*[translate_entity(client, e, fields, target) for e in entities])
        )


async def translate_one(entity: dict, fields, target: str | None) -> dict:
    return (await translate_many([entity], fields, target))[0]
