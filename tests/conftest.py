import os

import pytest


@pytest.fixture
def db_dir(tmp_path):
    """A store directory that does not exist yet."""
    return os.path.join(str(tmp_path), "_memdb")
