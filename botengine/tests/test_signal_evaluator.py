from datetime import datetime

from botengine.engine.signal_evaluator import evaluate_entry, evaluate_exit, moving_average_cross, snapshots
from botengine.models.bot_models import load_bot
from botengine.models.candle_models import Candle
from botengine.models.trade_models import Trade
from botengine.tests.fakes import MINUTE_MS, bot_row, candles_from_closes
from botengine.utils.orders_enum import Side, TradeStatus

RSI_25_CLOSES = [100, 101, 102, 103, 102, 101, 100, 99, 98, 97, 96, 95, 94, 94, 94]

MA_INDICATORS = [
    {'name': 'SMA', 'type': 'primary', 'parameters': {'period': 21}},
    {'name': 'SMA', 'type': 'primary', 'parameters': {'period': 9}},
]


def _trade(side: Side) -> Trade:
    return Trade('t1', 'user-1', 'BTCUSDT', side, 1.0, 100.0, 100.0, TradeStatus.OPEN, datetime(2024, 1, 1), bot_id='bot-1')


def test_rsi_oversold_entry():
    bot = load_bot(bot_row())
    decision = evaluate_entry(bot, candles_from_closes(RSI_25_CLOSES), 0)
    assert decision.should_trade
    assert decision.side is Side.BUY


def test_rsi_threshold_not_reached():
    bot = load_bot(bot_row(entry_value=20.0))
    assert not evaluate_entry(bot, candles_from_closes(RSI_25_CLOSES), 0).should_trade


def test_open_position_cap_blocks_entry():
    bot = load_bot(bot_row(max_open_positions=2))
    assert not evaluate_entry(bot, candles_from_closes(RSI_25_CLOSES), 2).should_trade


def test_single_candle_never_trades():
    bot = load_bot(bot_row())
    assert not evaluate_entry(bot, candles_from_closes([100]), 0).should_trade


def test_golden_cross_buys():
    bot = load_bot(bot_row(indicators=MA_INDICATORS, entry_condition='crossover'))
    assert [s.period for s in bot.moving_averages] == [9, 21]
    candles = candles_from_closes([100.0] * 29 + [130.0])
    decision = evaluate_entry(bot, candles, 0)
    assert decision.should_trade
    assert decision.side is Side.BUY


def test_death_cross_ignored_when_only_golden_requested():
    bot = load_bot(bot_row(indicators=MA_INDICATORS, entry_condition='crossover'))
    candles = candles_from_closes([100.0] * 29 + [70.0])
    snap, prev = snapshots(candles, bot)
    assert moving_average_cross(snap, prev, bot.ma_cross_entry) is None
    assert moving_average_cross(snap, prev, (Side.SELL,)) is Side.SELL


def test_bollinger_lower_band_touch_buys_by_default():
    closes = [99.0 if i % 2 else 101.0 for i in range(25)] + [90.0]
    bot = load_bot(bot_row(primary_indicator='bollinger', primary_period=20, entry_condition=''))
    decision = evaluate_entry(bot, candles_from_closes(closes), 0)
    assert decision.should_trade
    assert decision.side is Side.BUY


def test_adx_default_follows_directional_index():
    closes = [100.0 + i for i in range(60)]
    bot = load_bot(bot_row(primary_indicator='adx', primary_period=14, entry_condition=''))
    decision = evaluate_entry(bot, candles_from_closes(closes), 0)
    assert decision.should_trade
    assert decision.side is Side.BUY


def test_families_without_default_rule():
    closes = [100.0 + i for i in range(60)]
    for name in ('atr', 'obv', 'volume'):
        bot = load_bot(bot_row(primary_indicator=name, primary_period=14, entry_condition=''))
        assert not evaluate_entry(bot, candles_from_closes(closes), 0).should_trade


def test_price_above_moving_average():
    closes = [100.0] * 30 + [105.0]
    bot = load_bot(bot_row(primary_indicator='ema', primary_period=20, entry_condition='price above'))
    decision = evaluate_entry(bot, candles_from_closes(closes), 0)
    assert decision.should_trade and decision.side is Side.BUY

    bot = load_bot(bot_row(primary_indicator='ema', primary_period=20, entry_condition='price below'))
    assert not evaluate_entry(bot, candles_from_closes(closes), 0).should_trade


def test_rsi_exit_levels():
    closes = [100.0 + i for i in range(30)]
    bot = load_bot(bot_row(exit_condition='overbought'))
    candles = candles_from_closes(closes)
    assert evaluate_exit(bot, _trade(Side.BUY), candles)
    assert not evaluate_exit(bot, _trade(Side.SELL), candles)


def test_no_exit_without_condition():
    closes = [100.0 + i for i in range(30)]
    bot = load_bot(bot_row(exit_condition=''))
    assert not evaluate_exit(bot, _trade(Side.BUY), candles_from_closes(closes))


def test_moving_average_exit_on_death_cross():
    bot = load_bot(bot_row(indicators=MA_INDICATORS, entry_condition='crossover', exit_condition='crossunder'))
    candles = candles_from_closes([100.0] * 29 + [70.0])
    assert evaluate_exit(bot, _trade(Side.BUY), candles)
    assert not evaluate_exit(bot, _trade(Side.SELL), candles)


def _entry(candles, **bot):
    return evaluate_entry(load_bot(bot_row(**bot)), candles, 0)


# MACD: flat prices, a dip, then a jump turns the MACD line (and histogram) positive
MACD_UP = [100.0] * 40 + [95.0, 130.0]
MACD_DOWN = [100.0] * 40 + [105.0, 90.0]


def test_macd_crossover_above():
    decision = _entry(candles_from_closes(MACD_UP), primary_indicator='macd', entry_condition='crossover above')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes(MACD_DOWN), primary_indicator='macd',
                      entry_condition='crossover above').should_trade


def test_macd_histogram_change_follows_sign_flip():
    up = _entry(candles_from_closes(MACD_UP), primary_indicator='macd', entry_condition='histogram_change')
    down = _entry(candles_from_closes(MACD_DOWN), primary_indicator='macd', entry_condition='histogram_change')
    assert up.should_trade and up.side is Side.BUY
    assert down.should_trade and down.side is Side.SELL


def test_macd_divergence():
    up = _entry(candles_from_closes(MACD_UP), primary_indicator='macd', entry_condition='divergence')
    down = _entry(candles_from_closes(MACD_DOWN), primary_indicator='macd', entry_condition='divergence')
    assert up.should_trade and up.side is Side.BUY
    assert down.should_trade and down.side is Side.SELL
    # no sign flip between the two windows
    assert not _entry(candles_from_closes(MACD_UP + [140.0]), primary_indicator='macd',
                      entry_condition='divergence').should_trade


# accelerating decline then a reversal bar: %K jumps above %D
STOCH_CLOSES = [130.0 - i for i in range(28)] + [100.0, 97.0, 93.0, 120.0]


def test_stochastic_k_crosses_d():
    candles = candles_from_closes(STOCH_CLOSES)
    decision = _entry(candles, primary_indicator='stochastic', entry_condition='crossover above')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles, primary_indicator='stochastic', entry_condition='crossover below').should_trade


def test_williams_oversold_threshold():
    bottom = candles_from_closes(STOCH_CLOSES[:-1])
    decision = _entry(bottom, primary_indicator='williams', entry_value=None, entry_condition='oversold')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes(STOCH_CLOSES), primary_indicator='williams', entry_value=None,
                      entry_condition='oversold').should_trade


def test_williams_crosses_midpoint():
    decision = _entry(candles_from_closes(STOCH_CLOSES), primary_indicator='williams', entry_value=None,
                      entry_condition='crossover above')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes(STOCH_CLOSES[:-1]), primary_indicator='williams', entry_value=None,
                      entry_condition='crossover above').should_trade


def test_cci_overbought_threshold():
    spike = candles_from_closes([100.0] * 25 + [120.0])
    decision = _entry(spike, primary_indicator='cci', primary_period=20, entry_value=None, entry_condition='overbought')
    assert decision.should_trade and decision.side is Side.SELL
    assert not _entry(candles_from_closes([100.0] * 26), primary_indicator='cci', primary_period=20,
                      entry_value=None, entry_condition='overbought').should_trade


def test_cci_crosses_below_zero():
    reversal = candles_from_closes([100.0] * 25 + [120.0, 60.0])
    decision = _entry(reversal, primary_indicator='cci', primary_period=20, entry_value=None, entry_condition='crossunder')
    assert decision.should_trade and decision.side is Side.SELL
    # from a flat (zero) reading there is nothing to cross down from
    assert not _entry(candles_from_closes([100.0] * 25 + [120.0]), primary_indicator='cci', primary_period=20,
                      entry_value=None, entry_condition='crossunder').should_trade


def _hilo_bot(condition, multiplier=2):
    return dict(
        indicators=[{'name': 'HILO', 'type': 'primary', 'parameters': {'period': 20, 'multiplier': multiplier}}],
        entry_condition=condition,
    )


def test_hilo_breakout_crosses_upper_band():
    # a negative multiplier pulls both bands onto the channel midpoint
    decision = _entry(candles_from_closes([100.0] * 25 + [110.0]), **_hilo_bot('breakout', -0.5))
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes([100.0] * 25 + [90.0]), **_hilo_bot('breakout', -0.5)).should_trade


def test_hilo_cross_below_lower_band():
    decision = _entry(candles_from_closes([100.0] * 25 + [90.0]), **_hilo_bot('crossunder', -0.5))
    assert decision.should_trade and decision.side is Side.SELL
    assert not _entry(candles_from_closes([100.0] * 25 + [110.0]), **_hilo_bot('crossunder', -0.5)).should_trade


def test_hilo_touch_uses_tenth_of_a_percent_tolerance():
    # narrow channel: close sits within 0.1% of the lower band without the low reaching it
    narrow = candles_from_closes([1000.0] * 25, spread=0.1)
    decision = _entry(narrow, primary_indicator='hilo', primary_period=20, entry_condition='touched lower')
    assert decision.should_trade and decision.side is Side.BUY

    wide = candles_from_closes([1000.0] * 25, spread=1.0)
    assert not _entry(wide, primary_indicator='hilo', primary_period=20, entry_condition='touched lower').should_trade


def test_parabolic_sar_trend_change():
    crash = candles_from_closes([100.0 + i for i in range(30)] + [110.0])
    decision = _entry(crash, primary_indicator='parabolicsar', entry_condition='trend_change')
    assert decision.should_trade and decision.side is Side.SELL

    trend = candles_from_closes([100.0 + i for i in range(31)])
    assert not _entry(trend, primary_indicator='parabolicsar', entry_condition='trend_change').should_trade


def test_ichimoku_cloud_breakout():
    decision = _entry(candles_from_closes([100.0] * 60 + [110.0]), primary_indicator='ichimoku',
                      entry_condition='cloud_breakout')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes([100.0] * 60 + [95.0]), primary_indicator='ichimoku',
                      entry_condition='cloud_breakout').should_trade


def test_ichimoku_line_cross():
    # tenkan (last 9 bars) sits above kijun (last 26 bars, still holding the 90s)
    candles = candles_from_closes([90.0] * 30 + [100.0] * 20 + [105.0])
    decision = _entry(candles, primary_indicator='ichimoku', entry_condition='line_crossover above')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles, primary_indicator='ichimoku', entry_condition='line_crossover below').should_trade


def test_obv_rising_crosses_its_mean():
    decision = _entry(candles_from_closes([100.0] * 10 + [101.0, 102.0]), primary_indicator='obv',
                      entry_condition='crossover above')
    assert decision.should_trade and decision.side is Side.BUY
    assert not _entry(candles_from_closes([100.0] * 10 + [101.0, 100.0]), primary_indicator='obv',
                      entry_condition='crossover above').should_trade


def test_volume_rules_compare_with_previous_average():
    candles = candles_from_closes([100.0] * 30)
    candles[-1].volume = 2000.0
    decision = _entry(candles, primary_indicator='volume', primary_period=20, entry_condition='high_volume')
    assert decision.should_trade and decision.side is Side.BUY
    # average moves from 100 to 195: high volume, but not a 2x spike
    assert not _entry(candles, primary_indicator='volume', primary_period=20,
                      entry_condition='volume_spike').should_trade


def test_moving_average_breakout_needs_strong_body():
    strong = candles_from_closes([100.0] * 30 + [105.0])
    decision = _entry(strong, primary_indicator='ema', primary_period=20, entry_condition='breakout')
    assert decision.should_trade and decision.side is Side.BUY

    # long upper wick: body 3 of a 10.5 range is below 60%
    wick = candles_from_closes([100.0] * 30) + [Candle(30 * MINUTE_MS, 100.0, 110.0, 99.5, 103.0, 100.0)]
    assert not _entry(wick, primary_indicator='ema', primary_period=20, entry_condition='breakout').should_trade
