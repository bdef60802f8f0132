"""Shared fixtures for the batch tests."""
import os
import stat

import pytest

from sample_trees import FAKE_PIPELINE
from sample_trees import make_sample


@pytest.fixture
def fake_pipeline(tmp_path):
    path = tmp_path / 'fake_mitohpc.sh'
    path.write_text(FAKE_PIPELINE, encoding='utf-8')
    os.chmod(path, os.stat(path).st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def abc_root(tmp_path):
    root = tmp_path / 'data'
    make_sample(root, 'a', 'a', positions=(300, 100, 73))
    make_sample(root, 'b', 'b', positions=(150,), fail=True)
    make_sample(root, 'c', 'c', positions=(100, 200))
    return root
