# main.py
import config
from services.errors import SnapshotError, TradingError
from services.prices import MarketTicker, make_default_market
from services.snapshot import load_snapshot, save_snapshot
from trading import Portfolio, Side, execute_trade

try:
    import matplotlib.pyplot as plt
except Exception:
    plt = None

COMMANDS = '''
Available commands:
  prices                 - show current market prices
  list                   - alias for prices
  next N                 - advance the market N ticks (N defaults to 1)
  buy SYMBOL QTY         - buy QTY shares of SYMBOL at current price
  sell SYMBOL QTY        - sell QTY shares of SYMBOL at current price
  portfolio              - show portfolio summary
  history                - show transactions, newest first
  chart                  - plot portfolio value history (requires matplotlib)
  save [FILE]            - save cash and holdings (default data/portfolio.csv)
  load [FILE]            - load cash and holdings, clearing transactions and history
  auto on|off            - start/stop ticking the market every second
  help                   - show this help
  quit / exit            - exit the simulator
'''


def print_prices(market):
    for s in market.get_all_stocks():
        print(f"{s.ticker:<6}{s.name:<22}{s.price:>12,.2f}{s.change_percent * 100:>8.2f}%")


def print_history(portfolio):
    txns = portfolio.get_transactions(newest_first=True)
    if not txns:
        print('No trades yet.')
        return
    for t in txns:
        d = t.as_dict()
        print(f"{d['time']} {d['type']:<4} {d['ticker']:<6} {d['qty']:>6} @ {d['price']:,.2f} = {d['value']:,.2f}")


def plot_history(portfolio):
    if plt is None:
        print('matplotlib not available. Install matplotlib to use plotting: pip install matplotlib')
        return
    history = portfolio.get_history()
    if not history:
        print('No history recorded yet.')
        return
    plt.figure()
    plt.plot(range(len(history)), history)
    plt.title("Portfolio value")
    plt.xlabel('Tick')
    plt.ylabel('Value')
    plt.tight_layout()
    plt.show()


def main():
    print('Mini stock trading sandbox')
    market = make_default_market()
    portfolio = Portfolio(config.START_CASH)
    ticker = MarketTicker(market, portfolio, interval=config.TICK_INTERVAL)

    print("Type 'help' to see commands.\n")

    while True:
        try:
            cmd = input(f"[tick {market.ticks}] > ").strip()
        except (EOFError, KeyboardInterrupt):
            print('\nExiting simulator.')
            break
        if not cmd:
            continue

        parts = cmd.split()
        action = parts[0].lower()

        try:
            if action in ('quit', 'exit'):
                print('Goodbye!')
                break

            elif action in ('help', 'h', '?'):
                print(COMMANDS)

            elif action in ('prices', 'list'):
                print_prices(market)

            elif action == 'next':
                try:
                    n = int(parts[1]) if len(parts) > 1 else 1
                except ValueError:
                    print("Usage: next N  (N must be a positive integer)")
                    continue
                if n < 1:
                    print('Number of ticks must be >= 1')
                    continue
                for _ in range(n):
                    ticker.tick()
                print(f"Advanced {n} tick(s). Total value {portfolio.get_total_value(market):,.2f}")

            elif action in ('buy', 'sell'):
                if len(parts) < 3:
                    print(f'Usage: {action} SYMBOL QTY')
                    continue
                side = Side(action.upper())
                try:
                    txn = execute_trade(portfolio, market, side, parts[1], parts[2])
                except TradingError as e:
                    print(f"{action.capitalize()} failed: {e}")
                    continue
                print(f"{'Bought' if side is Side.BUY else 'Sold'} {txn.qty} of {txn.ticker} "
                      f"@ {txn.price:,.2f} -> cash {portfolio.get_cash():,.2f}")

            elif action == 'portfolio':
                print(portfolio.summary(market))

            elif action == 'history':
                print_history(portfolio)

            elif action == 'chart':
                plot_history(portfolio)

            elif action in ('save', 'load'):
                path = parts[1] if len(parts) > 1 else config.SNAPSHOT_FILE
                try:
                    if action == 'save':
                        save_snapshot(portfolio, path)
                        print(f"Portfolio saved to {path}")
                    else:
                        load_snapshot(portfolio, path)
                        print(f"Portfolio loaded from {path}")
                except SnapshotError as e:
                    print(f"{action.capitalize()} failed: {e}")

            elif action == 'auto':
                mode = parts[1].lower() if len(parts) > 1 else ''
                if mode == 'on':
                    ticker.start()
                    print('Market ticking every second.')
                elif mode == 'off':
                    ticker.stop()
                    print('Market ticking stopped.')
                else:
                    print('Usage: auto on|off')

            else:
                print("Unknown command. Type 'help' to see available commands.")
        except Exception as e:
            print(f"Error: {e}")

    ticker.stop()


if __name__ == '__main__':
    main()
