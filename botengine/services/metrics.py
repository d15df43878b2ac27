from prometheus_client import Counter, Histogram

cycles_counter = Counter("botengine_cycles_total", "Scheduler cycles run", ["job"])
trades_opened_counter = Counter("botengine_trades_opened_total", "Trades opened", ["side"])
trades_closed_counter = Counter("botengine_trades_closed_total", "Trades closed", ["reason"])
market_data_failures = Counter("botengine_market_data_failures_total", "Empty or failed market data fetches", ["kind"])
bots_deactivated_counter = Counter("botengine_bots_deactivated_total", "Bots deactivated by the balance guard")
cycle_latency = Histogram("botengine_cycle_latency_seconds", "Cycle latency seconds", ["job"])
