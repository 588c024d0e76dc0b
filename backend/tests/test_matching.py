import pytest

from trackguess.services.games.matching import matches, normalize


def test_normalize_strips_accents_case_and_punctuation():
    assert normalize('Beyoncé') == normalize('beyonce') == 'beyonce'
    assert normalize("  Don't   Stop Me   Now! ") == 'dont stop me now'
    assert normalize('AC/DC') == 'acdc'


def test_normalize_empty():
    assert normalize('') == ''
    assert normalize(None) == ''
    assert normalize('?!...') == ''


@pytest.mark.parametrize('guess,target', [
    ('beyonce', 'Beyoncé'),
    ('HEY JUDE', 'Hey Jude'),
    ('the beatles', 'The Beatles'),
    ('Beatles, The', 'beatles the'),
])
def test_exact_after_normalization(guess, target):
    assert matches(guess, target)


@pytest.mark.parametrize('guess,target', [
    ('', 'Halo'),
    ('   ', 'Halo'),
    ('halo', ''),
    ('metallica', 'The Beatles'),
    ('queen', 'Dancing Queen'),
])
def test_rejects_empty_and_unrelated(guess, target):
    assert not matches(guess, target)


def test_threshold_boundary_is_inclusive():
    # 7 of 10 characters: exactly 0.70
    assert matches('abcdefg', 'abcdefghij')
    # 6 of 10 characters: below
    assert not matches('abcdef', 'abcdefghij')


def test_containment_works_both_ways():
    assert matches('abcdefg', 'abcdefghij')
    assert matches('abcdefghij', 'abcdefg')
    assert matches('bohemian rhapsod', 'Bohemian Rhapsody')
    # 7 of 11 characters is under the threshold either way round
    assert not matches('the beatles', 'beatles')
    assert not matches('beatles', 'the beatles')


def test_just_below_threshold():
    # 9 of 13 characters is about 0.69
    assert not matches('abcdefghi', 'abcdefghijklm')


def test_custom_threshold():
    assert matches('abcdef', 'abcdefghij', threshold=0.6)
    assert not matches('abcdefg', 'abcdefghij', threshold=0.8)
