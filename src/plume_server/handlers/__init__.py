"""Job handlers keyed by job type."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Type

import httpx
from pydantic import BaseModel

from plume_server.handlers.generate import run_generate
from plume_server.schemas.jobs import PAYLOAD_MODELS, JobType


@dataclass(frozen=True)
class JobHandler:
    payload_model: Type[BaseModel]
    run: Callable[[Any, httpx.AsyncClient], Awaitable[Dict[str, Any]]]

    async def __call__(self, payload: Dict[str, Any], client: httpx.AsyncClient) -> Dict[str, Any]:
        return await self.run(self.payload_model.model_validate(payload), client)


def default_handlers() -> Dict[str, JobHandler]:
    return {
        JobType.GENERATE.value: JobHandler(PAYLOAD_MODELS[JobType.GENERATE], run_generate),
    }


__all__ = ["JobHandler", "default_handlers"]
