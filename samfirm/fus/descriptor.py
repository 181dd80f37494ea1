"""Parsing of the binary-inform response into a :class:`BinaryDescriptor`."""

from __future__ import annotations

from dataclasses import dataclass

from lxml import etree

from ..errors import ProtocolError

_FIELDS = {
    "size":        "./FUSBody/Put/BINARY_BYTE_SIZE/Data",
    "filename":    "./FUSBody/Put/BINARY_NAME/Data",
    "logic_value": "./FUSBody/Put/LOGIC_VALUE_FACTORY/Data",
    "model_path":  "./FUSBody/Put/MODEL_PATH/Data",
    "version":     "./FUSBody/Results/LATEST_FW_VERSION/Data",
}
_STATUS_PATH = "./FUSBody/Results/Status"


@dataclass(frozen=True)
class BinaryDescriptor:
    size: int
    filename: str
    logic_value: str
    model_path: str
    version: str

    @property
    def remote_file(self) -> str:
        return self.model_path + self.filename


def parse_binary_inform(xml: str | bytes) -> BinaryDescriptor:
    """Extract the five required fields; any missing one is a ProtocolError."""
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        root = etree.fromstring(xml)
    except etree.XMLSyntaxError as exc:
        raise ProtocolError(f"Binary inform response is not valid XML: {exc}") from exc

    status = root.findtext(_STATUS_PATH)
    if status is not None and status.strip() != "200":
        raise ProtocolError(
            f"Binary inform returned FUS status {status.strip()}, firmware could not be found"
        )

    values: dict[str, str] = {}
    for name, path in _FIELDS.items():
        text = root.findtext(path)
        if text is None or not text.strip():
            tag = path.split("/")[-2]
            raise ProtocolError(f"Binary inform response missing required field {tag}")
        values[name] = text.strip()

    try:
        size = int(values.pop("size"))
    except ValueError as exc:
        raise ProtocolError(f"Invalid BINARY_BYTE_SIZE: {exc}") from exc
    return BinaryDescriptor(size=size, **values)
