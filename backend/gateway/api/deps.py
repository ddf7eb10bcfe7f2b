from typing import Annotated

from fastapi import Depends, Request

from gateway.providers.bailian import BailianForwarder


def get_forwarder(request: Request) -> BailianForwarder:
    return request.app.state.forwarder


ForwarderDep = Annotated[BailianForwarder, Depends(get_forwarder)]
