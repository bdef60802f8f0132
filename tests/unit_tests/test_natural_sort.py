from mitobatch.batch.common.natural_sort import natural_key
from mitobatch.batch.common.natural_sort import natural_sorted


def test_numeric_segments_compare_by_value():
    assert natural_sorted(['s10', 's2', 's1']) == ['s1', 's2', 's10']


def test_nested_paths():
    paths = ['/d/batch10/x', '/d/batch2/x', '/d/batch2/a', '/d/batch1/z']
    assert natural_sorted(paths) == ['/d/batch1/z', '/d/batch2/a', '/d/batch2/x', '/d/batch10/x']


def test_prefix_sorts_first():
    assert natural_sorted(['a1', 'a']) == ['a', 'a1']


def test_ordering_is_total():
    assert natural_key('x01') != natural_key('x1')
    assert natural_sorted(['x1', 'x01']) == natural_sorted(['x01', 'x1'])


def test_chromosome_names():
    assert natural_sorted(['chr10', 'chrM', 'chr2', 'chr1']) == ['chr1', 'chr2', 'chr10', 'chrM']
