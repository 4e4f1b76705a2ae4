"""
Reader for the XML flavour of a Cal3D material (*.xrf).

An XRF file is a fragment rather than a document: a HEADER element followed by
a MATERIAL element, with no common root. It is wrapped in a synthetic root
before being handed to ElementTree.
"""
import codecs
import os
import re
import xml.etree.ElementTree as ET
from typing import Optional, Tuple

from cal3d.cal3d_parser import Material
from cal3d.debug_console import DebugConsole

XRF_MAGIC = "XRF"
XRF_FORMAT_VERSION = "900"

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")
_DECLARED_ENCODING = re.compile(
    rb"""^\s*<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z0-9._-]+)["']"""
)


def decode_xml_bytes(data: bytes) -> str:
    """Decode with the encoding named by the XML declaration, utf-8 otherwise."""
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8")
    match = _DECLARED_ENCODING.match(data)
    encoding = match.group(1).decode("ascii") if match else "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        DebugConsole.warning(f"Unknown XML encoding '{encoding}', reading as utf-8")
        encoding = "utf-8"
    return data.decode(encoding)


def _get_ci(elem, key):
    """Case-insensitive attribute lookup, '' when missing."""
    val = elem.get(key, "")
    if val:
        return val
    key_lower = key.lower()
    for k, v in elem.attrib.items():
        if k.lower() == key_lower:
            return v
    return ""


def parse_color(text, previous=(0, 0, 0, 0)) -> Tuple[int, int, int, int]:
    """
    Parse up to four whitespace separated byte components.

    Components that are missing, not integers, or outside 0..255 keep the
    matching component of `previous`.
    """
    parts = (text or "").split()
    color = list(previous)
    for i in range(4):
        if i >= len(parts):
            break
        try:
            value = int(parts[i])
        except ValueError:
            continue
        if 0 <= value <= 255:
            color[i] = value
    return tuple(color)


class XRFParser:
    def __init__(self, source, name=None):
        self.source = source
        self.name = name

    def parse(self) -> Optional[Material]:
        if isinstance(self.source, (str, os.PathLike)):
            if not os.path.exists(self.source):
                raise FileNotFoundError(f"File not found: {self.source}")
            if self.name is None:
                self.name = os.path.splitext(os.path.basename(self.source))[0]
            with open(self.source, "rb") as f:
                data = f.read()
        else:
            data = self.source.read()
        if isinstance(data, bytes):
            data = decode_xml_bytes(data)
        return self._read_material(data)

    def _read_material(self, text) -> Optional[Material]:
        text = _XML_DECLARATION.sub("", text, count=1)
        root = ET.fromstring(f"<XRF_FRAGMENT>{text}</XRF_FRAGMENT>")

        mat = Material(name=self.name or "")
        for elem in root.iter():
            tag = elem.tag.upper()
            if tag == "HEADER":
                magic = _get_ci(elem, "MAGIC")
                if magic != XRF_MAGIC:
                    DebugConsole.log(
                        f"Not a XML Cal3D material file. MAGIC should be {XRF_MAGIC} but actually is '{magic}'"
                    )
                    return None
                version = _get_ci(elem, "VERSION")
                if version != XRF_FORMAT_VERSION:
                    DebugConsole.warning(
                        f"XRF file version is '{version}' while {XRF_FORMAT_VERSION} was expected"
                    )
            elif tag == "AMBIENT":
                mat.ambient = parse_color(elem.text, mat.ambient)
            elif tag == "DIFFUSE":
                mat.diffuse = parse_color(elem.text, mat.diffuse)
            elif tag == "SPECULAR":
                mat.specular = parse_color(elem.text, mat.specular)
            elif tag == "SHININESS":
                try:
                    mat.shininess = float((elem.text or "").strip())
                except ValueError:
                    DebugConsole.warning(
                        f"Ignoring malformed SHININESS '{elem.text}' in material '{mat.name}'"
                    )
            elif tag == "MAP":
                mat.texture_names.append(elem.text or "")
        return mat


def read_material_xml(source, name=None) -> Optional[Material]:
    return XRFParser(source, name).parse()
