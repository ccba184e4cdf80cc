import numpy as np
import pytest

from rentalrec.config import EngineConfig
from service.recommender import InMemoryCatalogRepository, RecommendationOrchestrator

from tests.factories import NOW, make_catalog, make_users


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def users(catalog):
    return make_users(catalog)


@pytest.fixture
def user_map(users):
    return {u.id: u for u in users}


@pytest.fixture
def item_map(catalog):
    return {i.id: i for i in catalog}


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def repository(users, catalog):
    return InMemoryCatalogRepository(users=users, items=catalog)


@pytest.fixture
def orchestrator(repository, clock):
    return RecommendationOrchestrator(
        repository,
        config=EngineConfig(),
        clock=clock,
        rng=np.random.default_rng(7),
    )
