# Chat site protocol constants (endpoints, limits, response phrases)

DEFAULT_DOMAIN = "stackoverflow.com"

# URL templates. {site} is the main site, {chat} is the chat host.
URL_LOGIN = "https://{site}/users/login"
URL_LOBBY = "https://{chat}/rooms/{room_id}"
URL_EVENTS = "https://{chat}/chats/{room_id}/events"
URL_NEW_MESSAGE = "https://{chat}/chats/{room_id}/messages/new"
URL_LEAVE = "https://{chat}/chats/leave/{room_id}"
URL_EDIT = "https://{chat}/messages/{message_id}"
URL_DELETE = "https://{chat}/messages/{message_id}/delete"
URL_USER_INFO = "https://{chat}/user/info"

# Messages without line breaks longer than this are rejected by the site.
MAX_MESSAGE_LENGTH = 500

# How long after posting a message can still be edited.
EDIT_WINDOW_S = 120.0

# First snapshot size requested by the batch-boundary search; doubled per round.
INITIAL_FETCH_COUNT = 10

# Attempts for idempotent snapshot fetches vs. everything else.
FETCH_ATTEMPTS = 5
REQUEST_ATTEMPTS = 3

# The anti-forgery token embedded in site pages.
FKEY_PATTERN = r'value="([0-9a-f]{32})"'

# Only present on a room page when the logged-in user may post there.
POST_INPUT_MARKER = '<textarea id="input">'

GRAVATAR_URL = "https://www.gravatar.com/avatar/{hash}?d=identicon&s=128"

# Edit/delete response bodies (JSON strings).
EDIT_OK = "ok"
EDIT_ALREADY_DELETED = "This message has already been deleted and cannot be edited"
EDIT_TOO_LATE = "It is too late to edit this message"
EDIT_NOT_YOURS = "You can only edit your own messages"

DELETE_OK = "ok"
DELETE_ALREADY_DELETED = "This message has already been deleted."
DELETE_TOO_LATE = "It is too late to delete this message"
DELETE_NOT_YOURS = "You can only delete your own messages"
