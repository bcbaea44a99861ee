"""
AccessRisk Behavioural Analytics
----------------------------------
Ranks users for security review from one window of access-log events:
  1. Hour-of-day feature buckets per user
  2. Residual IQR outlier detection on each user's access_count series
  3. Per-user baseline (typical hours, common resources, failure rate)
  4. Weighted composite risk score, ranked

Modules:
  aggregator.py        - timestamp resolution and (user, hour) buckets
  anomaly_detection.py - seasonal decomposition + IQR fence per user
  profiler.py          - UserPattern baselines
  risk_scoring.py      - join, normalization, weighting, ranking
  pipeline.py          - analyze_access_logs() end-to-end entry point
"""
