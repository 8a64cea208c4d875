from storefront_server.state import Computed, Signal


def test_signal_notifies_on_change_only():
    cell = Signal(1)
    seen = []
    cell.subscribe(lambda new, old: seen.append((new, old)))

    cell.set(2)
    cell.set(2)
    cell.update(lambda v: v + 1)

    assert seen == [(2, 1), (3, 2)]
    assert cell() == 3


def test_unsubscribe():
    cell = Signal("a")
    seen = []
    unsubscribe = cell.subscribe(lambda new, old: seen.append(new))
    cell.set("b")
    unsubscribe()
    cell.set("c")
    assert seen == ["b"]


def test_computed_follows_sources():
    a = Signal(2)
    b = Signal(3)
    product = Computed(lambda: a() * b(), a, b)
    seen = []
    product.subscribe(lambda new, old: seen.append(new))

    a.set(4)
    b.set(3)
    b.set(1)

    assert product() == 4
    assert seen == [12, 4]
