"""Layout phases run by SpreadLine.fit(): order, align, compact, contextualize."""
