# client -> server
JOIN_CONVERSATION = "join-conversation"
LEAVE_CONVERSATION = "leave-conversation"
SEND_MESSAGE = "send-message"
TYPING = "typing"
STOP_TYPING = "stop-typing"
MARK_MESSAGES_READ = "mark-messages-read"
PING = "ping"

# server -> client
CONNECTED = "connected"
NEW_MESSAGE = "new-message"
USER_TYPING = "user-typing"
USER_STOP_TYPING = "user-stop-typing"
NEW_CONVERSATION = "new-conversation"
NEW_MESSAGE_NOTIFICATION = "new-message-notification"
MESSAGES_READ = "messages-read"
ACK = "ack"
PONG = "pong"
