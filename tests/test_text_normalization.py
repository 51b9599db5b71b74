from biblecloud.text_normalization import normalize_text


def test_normalize_strips_case_and_accents():
    assert normalize_text("Éxodo") == "exodo"
    assert normalize_text("Nahúm") == "nahum"
    assert normalize_text("Canción de CANCIONES") == "cancion de canciones"


def test_normalize_is_idempotent():
    for sample in ("Éxodo", "Jeremías 12", "ÑANDÚ", "", "abc"):
        once = normalize_text(sample)
        assert normalize_text(once) == once


def test_normalize_keeps_letters_that_do_not_decompose():
    assert normalize_text("Ñ") == "n"
    assert normalize_text("ø") == "ø"
