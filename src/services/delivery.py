import inspect

from src.core.exceptions import DeliveryFailure
from src.core.logging import get_plain_logger
from src.services.session_directory import SessionDirectory

logger = get_plain_logger(__name__)


class DeliveryNotifier:
    """
    Speaks a message to a customer who is still on the line

    A failed push is taken as proof the call is gone: the session is
    dropped from the directory and the caller gets False. Errors never
    propagate.
    """

    def __init__(self, directory: SessionDirectory):
        self.directory = directory

    async def notify(self, customer_phone: str, message: str) -> bool:
        live = self.directory.get(customer_phone)
        if live is None:
            logger.info(f"No active session for {customer_phone}")
            return False

        try:
            result = live.session_handle.say(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            failure = DeliveryFailure(customer_phone, e)
            logger.error(f"{failure}; dropping session in room {live.room_name}")
            self.directory.unregister(customer_phone, live.session_handle)
            return False

        logger.info(f"✅ Delivered answer to {customer_phone} during the call")
        return True
