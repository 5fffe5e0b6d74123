import json

import pytest

from country_positions import INITIAL_POSITIONS
from graph_algorithms import InvalidInput
from prepare_data import (
    _assign_centrality_tiers,
    _load_matrix,
    _parse_centrality_metrics,
    build_placeholder_graph,
    build_spillover_graph,
    main,
    resolve_initial_positions,
    select_codes,
)

EXAMPLE_MATRIX = {
    "A": {"B": 0.5, "C": 0.0},
    "B": {"A": 0.2, "C": 0.6},
    "C": {"B": 0.1},
}
EXAMPLE_POSITIONS = {
    "A": (400.0, 300.0, "West"),
    "B": (500.0, 300.0, "West"),
    "C": (600.0, 300.0, "East"),
}


def test_build_spillover_graph_example():
    graph = build_spillover_graph(
        EXAMPLE_MATRIX,
        ["A", "B", "C"],
        EXAMPLE_POSITIONS,
        total_frames=30,
    )
    meta = graph["meta"]
    assert meta["nodeCount"] == 3
    assert meta["edgeCount"] == 2
    assert meta["communityCount"] == 1
    assert meta["modularity"] == pytest.approx(0.0)
    assert meta["centralityMetrics"] == ["betweenness"]
    assert meta["layoutConfig"]["scaling_ratio"] == 50.0

    links = graph["links"]
    assert [(l["sourceCode"], l["targetCode"]) for l in links] == [("A", "B"), ("B", "C")]
    assert links[0]["normalizedWeight"] == pytest.approx(0.8333, abs=1e-4)
    assert links[1]["normalizedWeight"] == 1.0

    nodes = {node["id"]: node for node in graph["nodes"]}
    assert [nodes[c]["degree"] for c in "ABC"] == [1, 2, 1]
    assert [nodes[c]["mass"] for c in "ABC"] == [2.0, 3.0, 2.0]
    assert nodes["B"]["centrality"]["betweenness"] == 1.0
    assert nodes["A"]["centrality"]["betweenness"] == 0.0
    assert nodes["B"]["centralityTier"]["betweenness"] == "central"
    assert nodes["A"]["centralityTier"]["betweenness"] == "outer"
    assert nodes["C"]["region"] == "East"
    for node in graph["nodes"]:
        assert 0 <= node["x"] <= 1000
        assert 0 <= node["y"] <= 600


def test_build_spillover_graph_extra_metrics():
    graph = build_spillover_graph(
        EXAMPLE_MATRIX,
        ["A", "B", "C"],
        EXAMPLE_POSITIONS,
        centrality_metrics=["betweenness", "degree", "strength", "closeness"],
        total_frames=5,
    )
    assert graph["meta"]["centralityMetrics"] == ["betweenness", "closeness", "degree", "strength"]
    b = next(node for node in graph["nodes"] if node["id"] == "B")
    assert b["centrality"]["degree"] == pytest.approx(1.0)
    assert b["centrality"]["strength"] == pytest.approx(1.0)


def test_build_spillover_graph_rejects_negative_weights():
    with pytest.raises(InvalidInput):
        build_spillover_graph({"A": {"B": -0.1}}, ["A", "B"], EXAMPLE_POSITIONS, total_frames=1)


def test_build_spillover_graph_with_no_edges():
    graph = build_spillover_graph({}, ["A", "B", "C"], EXAMPLE_POSITIONS, total_frames=3)
    assert graph["links"] == []
    assert graph["meta"]["modularity"] is None
    assert [node["community"] for node in graph["nodes"]] == [0, 1, 2]
    assert [node["centrality"]["betweenness"] for node in graph["nodes"]] == [0.0, 0.0, 0.0]


def test_select_codes_skips_unplaceable_matrix_codes():
    matrix = {"A": {"B": 0.1, "Q": 0.2}, "X": {"C": 0.3}}
    messages = []
    assert select_codes(matrix, EXAMPLE_POSITIONS, log_func=messages.append) == ["A", "B", "C"]
    assert "X, Q" in messages[0]


def test_select_codes_with_default_position_keeps_everything():
    matrix = {"A": {"Q": 0.2}}
    assert select_codes(matrix, EXAMPLE_POSITIONS, default_position=(500.0, 300.0)) == ["A", "Q"]


def test_requested_codes_without_position_are_invalid():
    with pytest.raises(InvalidInput):
        select_codes({}, EXAMPLE_POSITIONS, requested=["A", "Q"])
    assert select_codes({}, EXAMPLE_POSITIONS, requested=["A", "Q"], default_position=(1.0, 2.0)) == ["A", "Q"]


def test_resolve_initial_positions():
    assert resolve_initial_positions(["C", "Q"], EXAMPLE_POSITIONS, (500.0, 300.0)) == [
        (600.0, 300.0),
        (500.0, 300.0),
    ]
    with pytest.raises(InvalidInput):
        resolve_initial_positions(["Q"], EXAMPLE_POSITIONS)


def test_parse_centrality_metrics():
    assert _parse_centrality_metrics(None) == ["betweenness"]
    assert _parse_centrality_metrics("Degree, bogus ,closeness") == ["degree", "closeness"]
    assert _parse_centrality_metrics("none") == []


def test_assign_centrality_tiers():
    tiers = _assign_centrality_tiers({"betweenness": {"A": 0.0, "B": 0.5, "C": 1.0}})
    assert tiers["betweenness"] == {"A": "outer", "B": "periphery", "C": "central"}


def test_load_matrix_from_csv(tmp_path):
    path = tmp_path / "matrix.csv"
    path.write_text("source,target,weight\nUSA, CAN ,0.3\nCAN,USA,0.1\n", encoding="utf-8")
    assert _load_matrix(path) == {"USA": {"CAN": 0.3}, "CAN": {"USA": 0.1}}


def test_load_matrix_rejects_duplicate_csv_rows(tmp_path):
    path = tmp_path / "matrix.csv"
    path.write_text("source,target,weight\nUSA,CAN,0.3\nUSA,CAN,0.1\n", encoding="utf-8")
    with pytest.raises(InvalidInput):
        _load_matrix(path)


def test_load_matrix_unwraps_api_payload(tmp_path):
    path = tmp_path / "matrix.json"
    path.write_text(json.dumps({"spillover_matrix": {"USA": {"CAN": 0.3}}}), encoding="utf-8")
    assert _load_matrix(path) == {"USA": {"CAN": 0.3}}


def test_main_writes_graph_and_frames(tmp_path, capsys):
    matrix_path = tmp_path / "matrix.json"
    matrix_path.write_text(
        json.dumps(
            {
                "USA": {"CAN": 0.3, "MEX": 0.05, "CHN": 0.1, "XXX": 0.4},
                "CAN": {"USA": 0.2, "MEX": 0.02},
                "CHN": {"USA": 0.15, "JPN": 0.12},
            }
        ),
        encoding="utf-8",
    )
    out_dir = tmp_path / "out"
    frames_path = tmp_path / "frames.jsonl"

    main(
        [
            "--input", str(matrix_path),
            "--output-dir", str(out_dir),
            "--frames", "20",
            "--frames-out", str(frames_path),
            "--centrality-metrics", "betweenness,degree",
        ]
    )

    graph = json.loads((out_dir / "spillover_graph.json").read_text())
    ids = [node["id"] for node in graph["nodes"]]
    assert ids == ["USA", "CAN", "CHN", "MEX", "JPN"]
    assert graph["meta"]["centralityMetrics"] == ["betweenness", "degree"]
    assert graph["meta"]["frames"] == 20

    snapshots = [json.loads(line) for line in frames_path.read_text().splitlines()]
    assert [snap["frame"] for snap in snapshots] == [3, 6, 9, 12, 15, 18, 20]
    assert set(snapshots[-1]["positions"]) == set(ids)

    out = capsys.readouterr().out
    assert "[prepare_data] Skipping 1 codes without an initial position: XXX" in out


def test_main_exits_on_invalid_matrix(tmp_path):
    matrix_path = tmp_path / "matrix.json"
    matrix_path.write_text(json.dumps({"USA": {"CAN": -1}}), encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["--input", str(matrix_path), "--output-dir", str(tmp_path / "out")])
    assert excinfo.value.code == 1


def test_empty_matrix_writes_placeholder_graph(tmp_path, capsys):
    matrix_path = tmp_path / "matrix.json"
    matrix_path.write_text("{}", encoding="utf-8")
    out_dir = tmp_path / "out"

    main(["--input", str(matrix_path), "--output-dir", str(out_dir)])

    graph = json.loads((out_dir / "spillover_graph.json").read_text())
    assert graph["links"] == []
    assert graph["meta"]["placeholder"] is True
    assert graph["meta"]["frames"] == 0
    assert [node["id"] for node in graph["nodes"]] == list(INITIAL_POSITIONS)
    for node in graph["nodes"]:
        x, y, region = INITIAL_POSITIONS[node["id"]]
        assert (node["x"], node["y"]) == (x, y)
        assert node["region"] == region
        assert node["community"] == 0
        assert node["centrality"] == {"betweenness": 0.5}
    assert "placeholder graph" in capsys.readouterr().out


def test_placeholder_graph_for_requested_codes():
    graph = build_placeholder_graph(["B", "Q"], EXAMPLE_POSITIONS, default_position=(10.0, 20.0))
    assert [(node["x"], node["y"]) for node in graph["nodes"]] == [(500.0, 300.0), (10.0, 20.0)]
    assert graph["meta"]["nodeCount"] == 2
    assert graph["meta"]["communityCount"] == 1
    assert all(node["centralityTier"]["betweenness"] == "central" for node in graph["nodes"])
    with pytest.raises(InvalidInput):
        build_placeholder_graph(["Q"], EXAMPLE_POSITIONS)


@pytest.mark.parametrize("flag", ["--frames", "--publish-every"])
def test_main_rejects_non_positive_frame_options(tmp_path, capsys, flag):
    matrix_path = tmp_path / "matrix.json"
    matrix_path.write_text(json.dumps(EXAMPLE_MATRIX), encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["--input", str(matrix_path), "--output-dir", str(tmp_path / "out"), flag, "0"])
    assert excinfo.value.code == 2
    assert "Expected a positive integer" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()
