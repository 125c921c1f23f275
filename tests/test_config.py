"""
Tests for ConsensusConfig validation and conversion.
"""

import pytest

from diceclust import ConsensusConfig, InvalidConfig


def test_defaults_are_valid():
    config = ConsensusConfig()
    assert config.ks == [2, 3, 4]
    assert config.p_item == 0.8
    assert config.total_copies == 100
    assert config.indices == ['pac', 'chi']


def test_single_k_is_wrapped():
    assert ConsensusConfig(ks=3).ks == [3]


def test_ks_are_sorted_and_unique():
    assert ConsensusConfig(ks=[4, 2, 4]).ks == [2, 4]


@pytest.mark.parametrize("params", [
    {'ks': []},
    {'ks': [1, 2]},
    {'p_item': 0.0},
    {'p_item': 1.5},
    {'reps': 0},
    {'algorithms': ['km', 'km']},
    {'pac_lower': 0.5, 'pac_upper': 0.5},
    {'pac_upper': 1.2},
    {'trim_quantile': -0.1},
    {'total_copies': 0},
    {'total_copies': 101},
    {'n_neighbors': 0},
    {'n_neighbors': 3, 'min_known_neighbors': 4},
    {'linkage_method': 'centroidish'},
    {'indices': []},
    {'indices': ['pac', 'not_an_index']},
])
def test_invalid_parameters_raise(params):
    with pytest.raises(InvalidConfig):
        ConsensusConfig(**params)


def test_invalid_config_is_value_error():
    with pytest.raises(ValueError):
        ConsensusConfig(p_item=-1)


def test_dict_round_trip_and_replace():
    config = ConsensusConfig(ks=[2, 5], seed=3, reweigh=True)
    assert ConsensusConfig.from_dict(config.to_dict()) == config

    changed = config.replace(total_copies=10)
    assert changed.total_copies == 10
    assert changed.ks == [2, 5]
    assert config.total_copies == 100


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(InvalidConfig):
        ConsensusConfig.from_dict({'ks': [2], 'unknown': 1})


def test_replace_validates():
    with pytest.raises(InvalidConfig):
        ConsensusConfig().replace(trim_quantile=2.0)
