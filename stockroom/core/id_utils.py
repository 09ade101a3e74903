import uuid

import shortuuid


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_short_token(length: int = 8) -> str:
    return shortuuid.ShortUUID(alphabet="23456789ABCDEFGHJKLMNPQRSTUVWXYZ").random(length=length)
