from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user leaves through the password gate again
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired once the password gate picked a role, so screens can configure themselves
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired when a class is added from the catalog or a cart line changes.
    Triggers a refresh of the cart screen.

    Screens other than CartScreen post it at App level; the cart reloads on resume.
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when an order is submitted.
    Listened to by the order ledger.
    """

    bubble = True


class CatalogChangedMessage(Message):
    """
    Fired after any catalog write (edit, delete, bulk import, sync, replace).
    Posted on the active screen; the other screens reload on resume.
    """

    bubble = True


class SettingsChangedMessage(Message):
    """column visibility or sheet settings were saved"""

    bubble = True


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
