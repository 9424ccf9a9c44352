"""Assembly proxy, quorum and voting service."""
