import io

import pytest

from image_builder import minimal_image
from structures import DecoderConfig


@pytest.fixture(params=['<', '>'], ids=['little', 'big'])
def endian(request):
    return request.param


@pytest.fixture
def config(endian):
    return DecoderConfig(endian, 1 << 17, 1)


@pytest.fixture
def minimal_stream(endian):
    return io.BytesIO(minimal_image(endian))
