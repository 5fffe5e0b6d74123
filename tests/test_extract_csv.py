import csv

from extract_csv import community_edges, extract_edges, extract_nodes, is_bridge

GRAPH = {
    "nodes": [
        {"id": "USA", "region": "Americas", "community": 0, "centrality": {"betweenness": 1.0}},
        {"id": "CAN", "region": "Americas", "community": 0, "centrality": {"betweenness": 0.0}},
        {"id": "CHN", "region": "Asia", "community": 1, "centrality": {"betweenness": 0.4}},
        {"id": "JPN", "region": "Asia", "community": 1, "centrality": {"betweenness": 0.0}},
    ],
    "links": [
        {"source": 0, "target": 1, "sourceCode": "USA", "targetCode": "CAN", "weight": 0.3, "normalizedWeight": 1.0},
        {"source": 0, "target": 2, "sourceCode": "USA", "targetCode": "CHN", "weight": 0.15, "normalizedWeight": 0.5},
        {"source": 2, "target": 3, "sourceCode": "CHN", "targetCode": "JPN", "weight": 0.12, "normalizedWeight": 0.4},
    ],
}


def _read(path):
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


def test_community_edges_are_annotated():
    rows = community_edges(GRAPH)
    assert [(r["source_community"], r["target_community"]) for r in rows] == [(0, 0), (0, 1), (1, 1)]
    assert [is_bridge(r) for r in rows] == [False, True, False]


def test_extract_edges_splits_by_community(tmp_path):
    written = extract_edges(GRAPH, tmp_path)
    assert written == {
        "edges_community_0.csv": 1,
        "edges_community_1.csv": 1,
        "edges_community_bridges.csv": 1,
    }
    bridges = _read(tmp_path / "edges_community_bridges.csv")
    assert bridges[0]["source"] == "USA" and bridges[0]["target"] == "CHN"


def test_extract_nodes_orders_by_betweenness(tmp_path):
    extract_nodes(GRAPH, tmp_path)
    rows = _read(tmp_path / "nodes_community_1.csv")
    assert [row["country"] for row in rows] == ["CHN", "JPN"]
    assert rows[0]["region"] == "Asia"
