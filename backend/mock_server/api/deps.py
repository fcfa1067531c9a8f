from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from mock_server.core.config import settings
from mock_server.core.gateway import Gateway, GatewayPipeline, build_gateway


@lru_cache
def get_gateway() -> Gateway:
    """Process-wide gateway services, built on first use."""
    return build_gateway(settings)


GatewayDep = Annotated[Gateway, Depends(get_gateway)]


def get_pipeline(gateway: GatewayDep) -> GatewayPipeline:
    return GatewayPipeline(gateway)


PipelineDep = Annotated[GatewayPipeline, Depends(get_pipeline)]
