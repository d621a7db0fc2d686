from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_message_id() -> str:
    return new_ulid("msg_")


def new_connection_id() -> str:
    return new_ulid("cn_")
