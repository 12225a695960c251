"""
Test Suite for the OpenAPI Fuzzer
=================================

Test Structure:
    - test_schema_sampler.py: value generation invariants (Hypothesis)
    - test_patterns.py / test_composition.py: regex generation and allOf merging
    - test_loader.py: OpenAPI document resolution
    - test_request_builder.py / test_replay.py: request rendering and exact replay
    - test_engine.py: trial loop, classification and persistence
    - test_result_store.py / test_stats_recorder.py: durable outputs
    - test_config.py / test_main.py: configuration and CLI
"""
