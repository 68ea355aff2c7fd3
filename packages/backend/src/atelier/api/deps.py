"""Gateway dependencies.

Learn: Gateways are created once in create_app() and kept on app.state.
Routes reach them through these Depends() helpers, which also makes them
easy to swap in tests.
"""

from fastapi import Request

from atelier.realtime.data_events import DataEventsGateway
from atelier.realtime.messages import MessageEventsGateway


def get_data_events(request: Request) -> DataEventsGateway:
    return request.app.state.data_events


def get_message_events(request: Request) -> MessageEventsGateway:
    return request.app.state.message_events
