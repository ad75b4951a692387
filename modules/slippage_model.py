from models.decision import TradeAction


def apply_slippage(price, action, slippage_pct=0.0, opening=True):
    """
    Fill price after a fixed slippage estimate. Buying in or covering a short
    pays more, selling out or opening a short receives less.
    """
    if not slippage_pct:
        return price
    pays_more = (action is TradeAction.BUY) == opening
    return price * (1 + slippage_pct) if pays_more else price * (1 - slippage_pct)
