from datetime import datetime, timezone

# wire format of the status endpoint: yyyy-MM-dd'T'HH:mm:ssXX, e.g. 2016-03-01T10:15:30-0700
DATE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value.strip(), DATE_TIME_FORMAT)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime(DATE_TIME_FORMAT)
