from fastapi import Request

from deskrelay.services.relay import Relay


def get_relay(request: Request) -> Relay:
    return request.app.state.relay
