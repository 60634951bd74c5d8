"""Provider webhook endpoint."""

import logging

from fastapi import APIRouter, Depends, Request

from video_relay.callbacks.models import CallbackAck
from video_relay.callbacks.service import CallbackReconciler
from video_relay.core.dependencies import get_callback_reconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Callbacks"])


@router.post("/callback", response_model=CallbackAck)
async def receive_callback(
    request: Request,
    reconciler: CallbackReconciler = Depends(get_callback_reconciler),
):
    """
    Receive a provider status event.

    Always answers 200 ``{"ok": true}``: the provider retries on any other
    status, so unknown tasks, late events and malformed bodies are only logged.
    No X-APP-TOKEN is required here.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Callback body is not valid JSON")
        return CallbackAck()

    outcome = await reconciler.handle(payload)
    logger.debug(f"Callback outcome: {outcome.value}")
    return CallbackAck()
