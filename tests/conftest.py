import io
import zipfile

import pytest

from powerline_survey.memory_store import InMemoryStore

FOLDERS_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>Relevamiento</name>
    <Folder>
      <name>L-101</name>
      <Folder>
        <name>LineaAerea</name>
        <Placemark>
          <name>Tramo 1</name>
          <LineString><coordinates>-58.40,-34.60,0 -58.39,-34.59,0</coordinates></LineString>
        </Placemark>
        <Placemark>
          <name>Tramo roto</name>
          <LineString><coordinates>-58.39,-34.59,0</coordinates></LineString>
        </Placemark>
        <Placemark>
          <name>Tramo 2</name>
          <LineString><coordinates>-58.39,-34.59,0 -58.38,-34.58,0 -58.37,-34.57,0</coordinates></LineString>
        </Placemark>
      </Folder>
      <Folder>
        <name>Estructuras</name>
        <Placemark>
          <name>E-1</name>
          <Point><coordinates>-58.40,-34.60,0</coordinates></Point>
        </Placemark>
        <Placemark>
          <name>E-2</name>
          <Point><coordinates>-58.38,-34.58,0</coordinates></Point>
        </Placemark>
        <Placemark>
          <Point><coordinates>-58.37,-34.57,0</coordinates></Point>
        </Placemark>
      </Folder>
    </Folder>
    <Folder>
      <name>L-202</name>
      <Folder>
        <name>Estructuras</name>
        <Placemark>
          <name>E-9</name>
          <Point><coordinates>-60.0,-31.0</coordinates></Point>
        </Placemark>
      </Folder>
    </Folder>
  </Document>
</kml>"""

PLACEMARKS_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Tramo 1</name>
      <ExtendedData><Data name="linea"><value>L-300</value></Data></ExtendedData>
      <LineString><coordinates>-64.0,-31.0 -64.1,-31.1</coordinates></LineString>
    </Placemark>
    <Placemark>
      <name>E-1</name>
      <ExtendedData>
        <Data name="linea"><value>L-300</value></Data>
        <Data name="estructura"><value>si</value></Data>
      </ExtendedData>
      <Point><coordinates>-64.0,-31.0</coordinates></Point>
    </Placemark>
    <Placemark>
      <name>SE Norte</name>
      <ExtendedData><Data name="linea"><value>L-300</value></Data></ExtendedData>
      <Point><coordinates>-64.2,-31.2</coordinates></Point>
    </Placemark>
    <Placemark>
      <name>Sin linea</name>
      <LineString><coordinates>0,0 1,1</coordinates></LineString>
    </Placemark>
    <Placemark>
      <name>Tramo 2</name>
      <ExtendedData><Data name="linea"><value>L-400</value></Data></ExtendedData>
      <LineString><coordinates>-65.0,-32.0 -65.1,-32.1</coordinates></LineString>
    </Placemark>
  </Document>
</kml>"""


def build_kmz(members: dict[str, str | bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return buf.getvalue()


def build_corrupt_kmz(kml: str) -> bytes:
    """A deflated KMZ whose compressed member data has been overwritten."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("doc.kml", kml)
    data = bytearray(buf.getvalue())
    with zipfile.ZipFile(io.BytesIO(bytes(data))) as zf:
        info = zf.getinfo("doc.kml")
    offset = info.header_offset
    name_len = int.from_bytes(data[offset + 26 : offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28 : offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    for i in range(start, start + min(info.compress_size, 64)):
        data[i] ^= 0xFF
    return bytes(data)


@pytest.fixture
def folders_kml():
    return FOLDERS_KML


@pytest.fixture
def placemarks_kml():
    return PLACEMARKS_KML


@pytest.fixture
def make_kmz():
    return build_kmz


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def corrupt_kmz():
    return build_corrupt_kmz(FOLDERS_KML)
