DEFAULT_CONFIG = {
    "default": "database",      # connection used when a job names none
    "batch_size": "100",
    "delete_after": "604800",   # 7 days
    "lock_duration": "600",
    "delay": "0",               # seconds before a self-rearmed tick
    "overlap_lock": "900",
    "backoff_base": "2",
    "interval": "60",
}

ALLOWED_CONFIG_KEYS = set(DEFAULT_CONFIG.keys())

# Keys that may be overridden per queue as queues.<name>.<key>
QUEUE_CONFIG_KEYS = {"batch_size", "delay", "lock_duration"}

INT_CONFIG_KEYS = ALLOWED_CONFIG_KEYS - {"default"}


def validate_key(key: str):
    if key in ALLOWED_CONFIG_KEYS:
        return
    parts = key.split(".")
    if len(parts) == 3 and parts[0] == "queues" and parts[1] and parts[2] in QUEUE_CONFIG_KEYS:
        return
    raise ValueError(
        f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))} "
        f"or queues.<name>.<{'|'.join(sorted(QUEUE_CONFIG_KEYS))}>"
    )


def validate_value(key: str, value) -> str:
    name = key.rsplit(".", 1)[-1]
    if name in INT_CONFIG_KEYS:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer.")
        if number < 0:
            raise ValueError(f"{key} must be >= 0.")
        return str(number)
    if not str(value).strip():
        raise ValueError(f"{key} cannot be empty.")
    return str(value)


def get_value(config: dict, key: str, queue: str = None, default=None):
    """
    Look up a setting for a queue: queues.<queue>.<key>, then <key>, then
    the built-in default.
    """
    if queue and f"queues.{queue}.{key}" in config:
        return config[f"queues.{queue}.{key}"]
    if key in config:
        return config[key]
    return DEFAULT_CONFIG.get(key, default)


def get_int(config: dict, key: str, queue: str = None) -> int:
    value = get_value(config, key, queue)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}")
