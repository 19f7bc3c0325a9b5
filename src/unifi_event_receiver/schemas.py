# In src/unifi_event_receiver/schemas.py

from typing import TypedDict

from pydantic import BaseModel, ConfigDict, Field, SecretStr

# --- Static Type Hinting (for mypy and IDEs) ---


class MessageAttributeDict(TypedDict):
    DataType: str
    StringValue: str


class IngestAck(TypedDict):
    """Body returned to the webhook sender once an alarm is queued."""

    msg: str
    eventId: str
    device: str
    processingDelay: int
    messageId: str
    estimatedProcessingTime: str


# --- Runtime Validation (using Pydantic) ---


class _AlarmModel(BaseModel):
    # UniFi adds fields between firmware releases; keep them so the stored
    # record is a faithful copy of what was received.
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SourceRef(_AlarmModel):
    device: str | None = None
    type: str | None = None


class Condition(_AlarmModel):
    type: str | None = None
    source: str | None = None


class Trigger(_AlarmModel):
    key: str
    device: str
    event_id: str = Field(..., alias="eventId")

    # Populated by the delayed processor before the record is stored.
    device_name: str | None = Field(None, alias="deviceName")
    date: str | None = None
    event_key: str | None = Field(None, alias="eventKey")
    video_key: str | None = Field(None, alias="videoKey")
    original_file_name: str | None = Field(None, alias="originalFileName")

    thumbnail: str | None = None


class AlarmRecord(_AlarmModel):
    """
    One alarm occurrence as received from the UniFi webhook.

    `timestamp` is always the webhook envelope's timestamp (epoch millis);
    the first trigger is the one used to derive storage keys.
    """

    name: str | None = None
    sources: list[SourceRef] = Field(default_factory=list)
    conditions: list[Condition] | None = None
    triggers: list[Trigger] = Field(..., min_length=1)
    timestamp: int = 0
    event_path: str | None = Field(None, alias="eventPath")
    event_local_link: str | None = Field(None, alias="eventLocalLink")

    @property
    def primary_trigger(self) -> Trigger:
        return self.triggers[0]

    def to_json(self) -> str:
        """Serialises the record exactly as it is written to the object store."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class UnifiCredentials(BaseModel):
    """Secret payload for the UniFi Protect console."""

    model_config = ConfigDict(populate_by_name=True)

    hostname: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    password: SecretStr
    api_key: SecretStr = Field(SecretStr(""), alias="apikey")

    @property
    def base_url(self) -> str:
        """Hostname with a scheme; bare hostnames are assumed to be HTTPS."""
        if self.hostname.startswith(("http://", "https://")):
            return self.hostname.rstrip("/")
        return "https://" + self.hostname.rstrip("/")


class SummaryEvent(BaseModel):
    """
    Message published for the downstream summary consumer after an alarm is
    processed. Field names are PascalCase on the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    event_id: str | None = Field(None, alias="EventId")
    device: str | None = Field(None, alias="Device")
    timestamp: int = Field(0, alias="Timestamp")
    alarm_s3_key: str | None = Field(None, alias="AlarmS3Key")
    video_s3_key: str | None = Field(None, alias="VideoS3Key")
    presigned_video_url: str | None = Field(None, alias="PresignedVideoUrl")
    alarm_name: str | None = Field(None, alias="AlarmName")
    device_name: str | None = Field(None, alias="DeviceName")
    event_type: str | None = Field(None, alias="EventType")
    event_path: str | None = Field(None, alias="EventPath")
    event_local_link: str | None = Field(None, alias="EventLocalLink")
    metadata: dict[str, str] = Field(default_factory=dict, alias="Metadata")


class DeviceEntry(BaseModel):
    device_name: str = Field(..., alias="deviceName")
    device_mac: str = Field(..., alias="deviceMac")


class DeviceMetadataCollection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    devices: list[DeviceEntry] = Field(default_factory=list)
