"""Tests for amount handling and quote normalization."""

from decimal import Decimal

import pytest

from swapquote.errors import NormalizationError
from swapquote.routing.amounts import (
    canonical_amount,
    fraction_digits,
    from_base_units,
    minimum_out,
    parse_amount,
    slippage_bps,
    to_base_units,
)
from swapquote.routing.base import Hop
from swapquote.routing.normalizer import (
    build_quote,
    normalize_jupiter,
    normalize_oneinch,
    validate_route,
)
from swapquote.tokens import Token


class TestAmounts:
    """Tests for decimal-string amount helpers."""

    def test_canonical_amount(self):
        assert canonical_amount("1.500") == "1.5"
        assert canonical_amount("100") == "100"
        assert canonical_amount("1e2") == "100"
        assert canonical_amount("0.000") == "0"
        assert canonical_amount(" 2.10 ") == "2.1"

    def test_parse_amount_rejects_bad_values(self):
        for bad in ["", "abc", "NaN", "Infinity", "-1"]:
            with pytest.raises(ValueError):
                parse_amount(bad)

    def test_parse_amount_rejects_huge_exponents(self):
        for bad in ["1e999999999", "1e-999999999", "1e81"]:
            with pytest.raises(ValueError, match="out of range"):
                parse_amount(bad)
        assert canonical_amount("1e77") == "1" + "0" * 77
        assert canonical_amount("0e999999999") == "0"

    def test_parse_amount_rejects_floats(self):
        with pytest.raises(ValueError):
            parse_amount(1.5)

    def test_from_base_units_is_exact(self):
        assert from_base_units("1500000", 6) == "1.5"
        assert from_base_units("1", 18) == "0.000000000000000001"
        assert from_base_units("123456789012345678901234567890", 18) == (
            "123456789012.34567890123456789"
        )
        assert from_base_units("0", 6) == "0"

    def test_from_base_units_rejects_non_integers(self):
        with pytest.raises(ValueError):
            from_base_units("1.5", 6)
        with pytest.raises(ValueError):
            from_base_units("-5", 6)

    def test_to_base_units(self):
        assert to_base_units("1.5", 6) == 1500000
        assert to_base_units("1", 18) == 10**18
        assert to_base_units("0.000000000000000001", 18) == 1

    def test_to_base_units_rejects_excess_precision(self):
        with pytest.raises(ValueError):
            to_base_units("1.0000001", 6)

    def test_fraction_digits_ignores_trailing_zeros(self):
        assert fraction_digits("1.500000000") == 1
        assert fraction_digits("10") == 0

    def test_slippage_bps_floors(self):
        assert slippage_bps(0.5) == 50
        assert slippage_bps(0.555) == 55
        assert slippage_bps(1) == 100

    def test_minimum_out(self):
        assert minimum_out("1000", 0.5, 6) == "995"
        assert minimum_out("1", 0.5, 18) == "0.995"
        # rounded down to token precision
        assert minimum_out("0.000001", 0.5, 6) == "0"
        assert minimum_out("123.456789", 1, 6) == "122.222221"

    def test_minimum_out_zero_slippage(self):
        assert minimum_out("42.5", 0, 18) == "42.5"


class TestValidateRoute:
    """Tests for route invariants."""

    def test_single_hop(self, eth, usdc):
        hops = validate_route([Hop(eth, usdc, "pool", "Uniswap V3", 30)], eth, usdc)
        assert len(hops) == 1

    def test_empty_route_rejected(self, eth, usdc):
        with pytest.raises(NormalizationError, match="empty"):
            validate_route([], eth, usdc)

    def test_wrong_start_rejected(self, eth, usdc, dai):
        with pytest.raises(NormalizationError, match="starts at"):
            validate_route([Hop(dai, usdc, "pool", "Curve")], eth, usdc)

    def test_wrong_end_rejected(self, eth, usdc, dai):
        with pytest.raises(NormalizationError, match="ends at"):
            validate_route([Hop(eth, dai, "pool", "Curve")], eth, usdc)

    def test_broken_chain_rejected(self, eth, usdc, dai, weth):
        route = [
            Hop(eth, weth, "p1", "Uniswap V3"),
            Hop(dai, usdc, "p2", "Curve"),
        ]
        with pytest.raises(NormalizationError, match="route broken after position 0"):
            validate_route(route, eth, usdc, "1inch")

    def test_split_must_sum_to_100(self, eth, usdc):
        route = [
            Hop(eth, usdc, "p1", "Uniswap V3", percentage_of_split=60),
            Hop(eth, usdc, "p2", "Uniswap V2", percentage_of_split=30),
        ]
        with pytest.raises(NormalizationError, match="sums to 90"):
            validate_route(route, eth, usdc)

    def test_split_within_tolerance(self, eth, usdc):
        route = [
            Hop(eth, usdc, "p1", "Uniswap V3", percentage_of_split=33.333),
            Hop(eth, usdc, "p2", "Uniswap V2", percentage_of_split=33.333),
            Hop(eth, usdc, "p3", "Curve", percentage_of_split=33.334),
        ]
        assert len(validate_route(route, eth, usdc)) == 3

    def test_split_missing_percentage(self, eth, usdc):
        route = [
            Hop(eth, usdc, "p1", "Uniswap V3", percentage_of_split=50),
            Hop(eth, usdc, "p2", "Uniswap V2"),
        ]
        with pytest.raises(NormalizationError, match="missing percentages"):
            validate_route(route, eth, usdc)

    def test_split_then_hop(self, eth, weth, usdc):
        route = [
            Hop(eth, weth, "wrap", "WETH"),
            Hop(weth, usdc, "p1", "Uniswap V3", percentage_of_split=70),
            Hop(weth, usdc, "p2", "Sushi", percentage_of_split=30),
        ]
        assert len(validate_route(route, eth, usdc)) == 3

    def test_negative_fee_rejected(self, eth, usdc):
        with pytest.raises(NormalizationError, match="negative fee"):
            validate_route([Hop(eth, usdc, "pool", "X", fee_basis_points=-1)], eth, usdc)


class TestBuildQuote:
    """Tests for quote assembly."""

    def test_preserves_amount_strings(self, eth, usdc):
        quote = build_quote(
            source_name="test",
            token_in=eth,
            token_out=usdc,
            amount_in="1.50",
            amount_out="2999.123456",
            route=[Hop(eth, usdc, "pool", "Uniswap V3")],
            now=100.0,
        )
        assert quote.amount_in == "1.50"
        assert quote.amount_out == "2999.123456"
        assert quote.amount_out_minimum == "2984.127838"
        assert quote.valid_until == 130.0
        assert quote.hop_count == 1

    def test_minimum_never_exceeds_output(self, eth, usdc):
        for slippage in (0, 0.1, 0.5, 3, 50):
            quote = build_quote(
                source_name="test",
                token_in=eth,
                token_out=usdc,
                amount_in="1",
                amount_out="0.000007",
                route=[Hop(eth, usdc, "pool", "Uniswap V3")],
                slippage_percent=slippage,
            )
            assert Decimal(quote.amount_out_minimum) <= Decimal(quote.amount_out)

    def test_unique_ids(self, eth, usdc):
        kwargs = dict(
            source_name="test",
            token_in=eth,
            token_out=usdc,
            amount_in="1",
            amount_out="2000",
            route=[Hop(eth, usdc, "pool", "Uniswap V3")],
        )
        assert build_quote(**kwargs).id != build_quote(**kwargs).id

    def test_rejects_zero_output(self, eth, usdc):
        with pytest.raises(NormalizationError, match="must be positive"):
            build_quote(
                source_name="test",
                token_in=eth,
                token_out=usdc,
                amount_in="1",
                amount_out="0",
                route=[Hop(eth, usdc, "pool", "Uniswap V3")],
            )

    def test_rejects_non_finite_impact(self, eth, usdc):
        with pytest.raises(NormalizationError, match="not finite"):
            build_quote(
                source_name="test",
                token_in=eth,
                token_out=usdc,
                amount_in="1",
                amount_out="1",
                route=[Hop(eth, usdc, "pool", "Uniswap V3")],
                price_impact_percent="nan",
            )


class TestNormalizeOneInch:
    """Tests for 1inch payload normalization."""

    def test_single_path_with_split(self, registry, eth, weth, usdc):
        payload = {
            "dstAmount": "3000123456",
            "gas": 180000,
            "protocols": [
                [
                    [
                        {
                            "name": "WETH",
                            "part": 100,
                            "fromTokenAddress": eth.address,
                            "toTokenAddress": weth.address,
                        }
                    ],
                    [
                        {
                            "name": "UNISWAP_V3",
                            "part": 80,
                            "fromTokenAddress": weth.address,
                            "toTokenAddress": usdc.address,
                        },
                        {
                            "name": "CURVE",
                            "part": 20,
                            "fromTokenAddress": weth.address,
                            "toTokenAddress": usdc.address,
                        },
                    ],
                ]
            ],
        }
        quote = normalize_oneinch(
            payload,
            source_name="1inch (ethereum)",
            token_in=eth,
            token_out=usdc,
            amount_in="1",
            resolve_token=lambda a: registry.resolve_token(1, a),
            gas_cost_usd=7.5,
        )
        assert quote.amount_out == "3000.123456"
        assert quote.gas_estimate == 180000
        assert quote.gas_cost_usd == 7.5
        assert len(quote.route) == 3
        assert quote.hop_count == 2
        assert quote.raw is payload

    def test_multi_path_collapses(self, registry, eth, usdc):
        payload = {"dstAmount": "1000000", "protocols": [[[]], [[]]]}
        quote = normalize_oneinch(
            payload,
            source_name="1inch (ethereum)",
            token_in=eth,
            token_out=usdc,
            amount_in="0.0005",
            resolve_token=lambda a: registry.resolve_token(1, a),
        )
        assert quote.hop_count == 1
        assert quote.route[0].pool_identifier == "1inch:2-paths"

    def test_missing_amount(self, registry, eth, usdc):
        with pytest.raises(NormalizationError, match="missing dstAmount"):
            normalize_oneinch(
                {"protocols": []},
                source_name="1inch",
                token_in=eth,
                token_out=usdc,
                amount_in="1",
                resolve_token=lambda a: registry.resolve_token(1, a),
            )

    def test_non_integer_amount(self, registry, eth, usdc):
        with pytest.raises(NormalizationError, match="dstAmount"):
            normalize_oneinch(
                {"dstAmount": "12.5"},
                source_name="1inch",
                token_in=eth,
                token_out=usdc,
                amount_in="1",
                resolve_token=lambda a: registry.resolve_token(1, a),
            )


class TestNormalizeJupiter:
    """Tests for Jupiter payload normalization."""

    def _payload(self, sol, sol_usdc, **overrides):
        payload = {
            "inAmount": "1000000000",
            "outAmount": "99500000",
            "priceImpactPct": "0.0012",
            "routePlan": [
                {
                    "swapInfo": {
                        "ammKey": "AMM1",
                        "label": "Raydium",
                        "inputMint": sol.address,
                        "outputMint": sol_usdc.address,
                        "inAmount": "600000000",
                        "feeAmount": "1500000",
                        "feeMint": sol.address,
                    },
                    "percent": 60,
                },
                {
                    "swapInfo": {
                        "ammKey": "AMM2",
                        "label": "Orca",
                        "inputMint": sol.address,
                        "outputMint": sol_usdc.address,
                    },
                    "percent": 40,
                },
            ],
        }
        payload.update(overrides)
        return payload

    def test_split_route(self, registry, sol, sol_usdc):
        quote = normalize_jupiter(
            self._payload(sol, sol_usdc),
            source_name="Jupiter",
            token_in=sol,
            token_out=sol_usdc,
            amount_in="1",
            resolve_token=lambda m: registry.resolve_token(101, m),
            gas_estimate=5000,
        )
        assert quote.amount_out == "99.5"
        assert quote.price_impact_percent == pytest.approx(0.12)
        assert quote.hop_count == 1
        assert [h.protocol_name for h in quote.route] == ["Raydium", "Orca"]
        assert quote.route[0].fee_basis_points == 25
        assert quote.route[1].fee_basis_points == 0

    def test_bad_split_rejected(self, registry, sol, sol_usdc):
        payload = self._payload(sol, sol_usdc)
        payload["routePlan"][1]["percent"] = 30
        with pytest.raises(NormalizationError, match="sums to 90"):
            normalize_jupiter(
                payload,
                source_name="Jupiter",
                token_in=sol,
                token_out=sol_usdc,
                amount_in="1",
                resolve_token=lambda m: registry.resolve_token(101, m),
            )

    def test_empty_route_rejected(self, registry, sol, sol_usdc):
        with pytest.raises(NormalizationError, match="route is empty"):
            normalize_jupiter(
                self._payload(sol, sol_usdc, routePlan=[]),
                source_name="Jupiter",
                token_in=sol,
                token_out=sol_usdc,
                amount_in="1",
                resolve_token=lambda m: registry.resolve_token(101, m),
            )

    def test_unknown_intermediate_token(self, sol, sol_usdc):
        other = Token(101, "OtherMint111", "OTH", 6)
        payload = self._payload(sol, sol_usdc)
        payload["routePlan"] = [
            {"swapInfo": {"inputMint": sol.address, "outputMint": other.address}, "percent": 100},
            {"swapInfo": {"inputMint": other.address, "outputMint": sol_usdc.address}, "percent": 100},
        ]
        tokens = {t.address: t for t in (sol, sol_usdc, other)}
        quote = normalize_jupiter(
            payload,
            source_name="Jupiter",
            token_in=sol,
            token_out=sol_usdc,
            amount_in="1",
            resolve_token=tokens.__getitem__,
        )
        assert quote.hop_count == 2

    def test_split_then_hop_plan_collapses(self, registry, sol, sol_usdc):
        jup = registry.get_by_symbol(101, "JUP")
        payload = self._payload(sol, sol_usdc)
        payload["routePlan"] = [
            {"swapInfo": {"ammKey": "AMM1", "label": "Whirlpool", "inputMint": sol.address,
                          "outputMint": sol_usdc.address}, "percent": 60},
            {"swapInfo": {"ammKey": "AMM2", "label": "Raydium", "inputMint": sol.address,
                          "outputMint": jup.address}, "percent": 40},
            {"swapInfo": {"ammKey": "AMM3", "label": "Whirlpool", "inputMint": jup.address,
                          "outputMint": sol_usdc.address}, "percent": 100},
        ]

        quote = normalize_jupiter(
            payload,
            source_name="Jupiter",
            token_in=sol,
            token_out=sol_usdc,
            amount_in="1",
            resolve_token=lambda m: registry.resolve_token(101, m),
        )

        assert quote.amount_out == "99.5"
        assert len(quote.route) == 1
        assert quote.route[0].token_in == sol
        assert quote.route[0].token_out == sol_usdc
        assert quote.route[0].pool_identifier == "AMM1+AMM2+AMM3"
        assert quote.route[0].protocol_name == "Whirlpool+Raydium"

    def test_split_then_hop_plan_with_missing_share_rejected(self, registry, sol, sol_usdc):
        jup = registry.get_by_symbol(101, "JUP")
        payload = self._payload(sol, sol_usdc)
        payload["routePlan"] = [
            {"swapInfo": {"inputMint": sol.address, "outputMint": sol_usdc.address}, "percent": 60},
            {"swapInfo": {"inputMint": sol.address, "outputMint": jup.address}, "percent": 30},
            {"swapInfo": {"inputMint": jup.address, "outputMint": sol_usdc.address}, "percent": 100},
        ]

        with pytest.raises(NormalizationError):
            normalize_jupiter(
                payload,
                source_name="Jupiter",
                token_in=sol,
                token_out=sol_usdc,
                amount_in="1",
                resolve_token=lambda m: registry.resolve_token(101, m),
            )
