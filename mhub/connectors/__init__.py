"""Source adapters: Meta Ads, Google Ads API and Google Ads CSV/Sheets."""
