"""DuckDB storage: trade log, markets, daily volume."""
