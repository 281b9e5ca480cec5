# Line protocol constants (one UTF-8 message per line)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 12345

FIELD_SEP = "|"
LINE_END = "\n"

# Inbound: private-message request "PM|target|sender|body"
PM_MARKER = "PM"
PM_FIELDS = 4

# Outbound line prefixes
PRIVATE_PREFIX = "Private"
USER_LIST_PREFIX = "UserList"

# Fixed outbound texts
WELCOME_FMT = "Welcome {nick}"
REJECT_NICK_IN_USE = "Nickname already in use. Try another one."
DEPARTURE_FMT = "{nick} left the chat"
