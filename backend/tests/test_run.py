import run


def test_banner_lists_payment_routes():
    text = run.banner("127.0.0.1", 9000)
    assert "http://127.0.0.1:9000" in text
    for _, path, _ in run.ROUTES:
        assert path in text
    assert "[asymmetric]" in text or "[hybrid]" in text
