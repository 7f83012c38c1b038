from typing import Any

import httpx

from plume_server.schemas.jobs import GeneratePayload


class GenerationError(Exception):
    pass


class GenerationUnavailableError(GenerationError):
    pass


class GenerationStatusError(GenerationError):
    def __init__(self, status_code: int, text: str) -> None:
        super().__init__(f"Generation service returned HTTP {status_code}")
        self.status_code = status_code
        self.text = text


def create_generation_client(base_url: str, api_key: str | None = None, timeout: float = 300.0) -> httpx.AsyncClient:
    headers: dict[str, str] = {}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)


async def run_generate(payload: GeneratePayload, client: httpx.AsyncClient) -> dict[str, Any]:
    """Ask the content generation service to fill a batch.

    The service owns the batch's own status; this job only reports whether the call succeeded.
    """
    body: dict[str, Any] = {"user_id": payload.user_id}
    if payload.brand_profile_id:
        body["brand_profile_id"] = payload.brand_profile_id

    try:
        response = await client.post(f"v1/batches/{payload.batch_id}/generate", json=body)
    except httpx.RequestError as e:
        raise GenerationUnavailableError(str(e)) from e

    if response.status_code >= 400:
        raise GenerationStatusError(response.status_code, response.text)

    return {"ok": True}
