"""
Remote-write wire format.

The message classes are built at import time from a descriptor equivalent to
the following subset of Prometheus' ``remote.proto`` / ``types.proto``::

    message WriteRequest { repeated TimeSeries timeseries = 1; reserved 2; }
    message TimeSeries   { repeated Label labels = 1; repeated Sample samples = 2; }
    message Label        { string name = 1; string value = 2; }
    message Sample       { double value = 1; int64 timestamp = 2; }

Field numbers and types match the receiver's schema bit for bit.
"""
import logging

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError, EncodeError

from remotepush.errors import EncodingError
from remotepush.series import Label, Sample, TimeSeries, WriteRequest

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/x-protobuf"
PROTO_PACKAGE = "prometheus"

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name: str, number: int, field_type: int,
               repeated: bool = False, type_name: str = None):
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = f".{PROTO_PACKAGE}.{type_name}"
    return field


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe the remote-write messages as a proto3 file."""
    proto = descriptor_pb2.FileDescriptorProto(
        name="remotepush/remote.proto",
        package=PROTO_PACKAGE,
        syntax="proto3",
    )

    label = proto.message_type.add(name="Label")
    _add_field(label, "name", 1, _Field.TYPE_STRING)
    _add_field(label, "value", 2, _Field.TYPE_STRING)

    sample = proto.message_type.add(name="Sample")
    _add_field(sample, "value", 1, _Field.TYPE_DOUBLE)
    _add_field(sample, "timestamp", 2, _Field.TYPE_INT64)

    series = proto.message_type.add(name="TimeSeries")
    _add_field(series, "labels", 1, _Field.TYPE_MESSAGE, repeated=True, type_name="Label")
    _add_field(series, "samples", 2, _Field.TYPE_MESSAGE, repeated=True, type_name="Sample")

    request = proto.message_type.add(name="WriteRequest")
    _add_field(request, "timeseries", 1, _Field.TYPE_MESSAGE, repeated=True, type_name="TimeSeries")
    request.reserved_range.add(start=2, end=3)

    return proto


# Private pool so the names can't clash with other generated prometheus protos
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

LabelMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName("prometheus.Label"))
SampleMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName("prometheus.Sample"))
TimeSeriesMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName("prometheus.TimeSeries"))
WriteRequestMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName("prometheus.WriteRequest"))


def to_message(request: WriteRequest):
    """Copy a WriteRequest into its protobuf message, preserving order."""
    message = WriteRequestMessage()
    try:
        for series in request.timeseries:
            series_msg = message.timeseries.add()
            for label in series.labels:
                series_msg.labels.add(name=label.name, value=label.value)
            for sample in series.samples:
                series_msg.samples.add(value=sample.value, timestamp=sample.timestamp)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Invalid field in write request: {e}") from e
    return message


def encode(request: WriteRequest) -> bytes:
    """
    Serialize a WriteRequest.

    Output is deterministic for identical input. An empty request is legal
    and encodes to an empty message.
    """
    message = to_message(request)
    try:
        payload = message.SerializeToString(deterministic=True)
    except (EncodeError, ValueError) as e:
        raise EncodingError(f"Failed to serialize write request: {e}") from e

    logger.debug(f"Encoded {len(request.timeseries)} series into {len(payload)} bytes")
    return payload


def decode(payload: bytes) -> WriteRequest:
    """Parse an encoded WriteRequest back into the dataclass model."""
    message = WriteRequestMessage()
    try:
        message.ParseFromString(payload)
    except DecodeError as e:
        raise EncodingError(f"Failed to parse write request: {e}") from e

    return WriteRequest(timeseries=[
        TimeSeries(
            labels=[Label(label.name, label.value) for label in series_msg.labels],
            samples=[Sample(sample.value, sample.timestamp) for sample in series_msg.samples],
        )
        for series_msg in message.timeseries
    ])
