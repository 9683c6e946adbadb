# Billing domain: webhook reconciliation, subscription queries, invoice settlement
