"""Tests for disposables."""

from unittest.mock import MagicMock

from host.disposable import Disposable, dispose_all


class TestDisposable:
    def test_dispose_runs_callback_once(self):
        callback = MagicMock()
        d = Disposable(callback)

        d.dispose()
        d.dispose()

        callback.assert_called_once()
        assert d.disposed

    def test_without_callback(self):
        d = Disposable()
        d.dispose()
        assert d.disposed

    def test_from_releases_in_reverse_order(self):
        order = []
        combined = Disposable.from_(
            Disposable(lambda: order.append("first")),
            Disposable(lambda: order.append("second")),
        )

        combined.dispose()
        assert order == ["second", "first"]


class TestDisposeAll:
    def test_reverse_order_and_empties_list(self):
        order = []
        items = [Disposable(lambda: order.append(1)), Disposable(lambda: order.append(2))]

        dispose_all(items)

        assert order == [2, 1]
        assert items == []

    def test_failure_does_not_stop_others(self, caplog):
        released = MagicMock()
        items = [Disposable(released), Disposable(MagicMock(side_effect=RuntimeError("boom")))]

        dispose_all(items)

        released.assert_called_once()
        assert "Failed to dispose" in caplog.text
