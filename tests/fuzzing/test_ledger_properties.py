"""
Property-based tests: random sequences of stock commands against a
simple in-memory model of the stock.

After every command:
- the ledger agrees with the model (accepted and rejected commands alike),
- no lot or reagent total is negative,
- the integrity checks find no drift.
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from reagent_ledger.exceptions import InsufficientStockError, LotNotFoundError
from reagent_ledger.selectors.integrity_selector import LedgerIntegritySelector
from reagent_ledger.selectors.inventory_selector import InventorySelector

LOT_NUMBERS = ["P-1", "P-2", "P-3"]

commands = st.lists(
    st.one_of(
        st.tuples(
            st.just("stock_in"),
            st.sampled_from(LOT_NUMBERS),
            st.integers(min_value=1, max_value=50),
        ),
        st.tuples(
            st.just("stock_out"),
            st.sampled_from(LOT_NUMBERS),
            st.integers(min_value=1, max_value=50),
        ),
        st.tuples(st.just("delete_lot"), st.sampled_from(LOT_NUMBERS), st.just(0)),
    ),
    min_size=1,
    max_size=15,
)

FUZZ_SETTINGS = settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


class TestRandomCommandSequences:
    @given(sequence=commands)
    @FUZZ_SETTINGS
    def test_ledger_matches_model(
        self, session, clock, create_reagent, receive, stock_service, test_actor_id, sequence
    ):
        reagent = create_reagent()
        inventory = InventorySelector(session, clock)
        integrity = LedgerIntegritySelector(session)
        model: dict[str, int] = {}

        for op, lot_number, quantity in sequence:
            lot = inventory.check_lot_exists(reagent.id, lot_number)

            if op == "stock_in":
                receive(reagent.id, lot_number, quantity)
                model[lot_number] = model.get(lot_number, 0) + quantity

            elif op == "stock_out":
                if lot is None:
                    assert lot_number not in model
                    continue
                if quantity > model[lot_number]:
                    try:
                        stock_service.stock_out(lot.id, quantity, test_actor_id)
                    except InsufficientStockError as exc:
                        assert exc.available == model[lot_number]
                    else:
                        raise AssertionError("overdraft accepted")
                else:
                    stock_service.stock_out(lot.id, quantity, test_actor_id)
                    model[lot_number] -= quantity

            else:
                if lot is None:
                    continue
                stock_service.delete_lot(lot.id, test_actor_id)
                del model[lot_number]
                try:
                    stock_service.delete_lot(lot.id, test_actor_id)
                except LotNotFoundError:
                    pass
                else:
                    raise AssertionError("lot deleted twice")

            info = inventory.get_reagent(reagent.id)
            lots = {
                row.lot_number: row.quantity
                for row in inventory.lots_for_reagent(reagent.id)
            }
            assert lots == model
            assert info.total_quantity == sum(model.values())
            assert all(q >= 0 for q in lots.values())
            assert integrity.find_violations() == []

    @given(quantities=st.lists(st.integers(min_value=1, max_value=20), min_size=1, max_size=10))
    @FUZZ_SETTINGS
    def test_draining_a_lot_replays_to_zero(
        self, session, create_reagent, receive, stock_service, test_actor_id, quantities
    ):
        reagent = create_reagent()
        lot_id = receive(reagent.id, "DRAIN", sum(quantities)).lot.id

        for quantity in quantities:
            stock_service.stock_out(lot_id, quantity, test_actor_id)

        check = LedgerIntegritySelector(session).replay_lot(lot_id)
        assert check.stored_quantity == 0
        assert check.replayed_quantity == 0
        assert check.movement_count == len(quantities) + 1
        assert check.is_consistent
