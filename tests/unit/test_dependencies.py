"""Tests for the dependency graph and load order."""

from __future__ import annotations

from migready.analysis.dependencies import (
    LOOKUP,
    MASTER_DETAIL,
    GraphEdge,
    build_dependency_graph,
    load_order,
)
from migready.inventory.models import Lookup, ObjectDescriptor


def _obj(name, *lookups):
    return ObjectDescriptor(name=name, label=name, lookups=tuple(lookups))


def test_parents_load_first():
    objects = [
        _obj("Line__c", Lookup("Invoice__c", "Invoice__c", is_master_detail=True)),
        _obj("Invoice__c", Lookup("Account__c", "Account")),
        _obj("Account"),
    ]
    graph = build_dependency_graph(objects)
    assert graph.order == ("Account", "Invoice__c", "Line__c")
    assert GraphEdge("Line__c", "Invoice__c", MASTER_DETAIL) in graph.edges
    assert GraphEdge("Invoice__c", "Account", LOOKUP) in graph.edges


def test_edges_outside_scan_are_dropped():
    graph = build_dependency_graph([_obj("Invoice__c", Lookup("Owner__c", "Territory__c"))])
    assert graph.edges == ()
    assert graph.order == ("Invoice__c",)
    assert [n.name for n in graph.nodes] == ["Invoice__c"]


def test_self_reference_does_not_block():
    graph = build_dependency_graph([_obj("Account", Lookup("ParentId", "Account"))])
    assert graph.order == ("Account",)


def test_cycle_members_appended_in_input_order():
    edges = [GraphEdge("A", "B"), GraphEdge("B", "A"), GraphEdge("C", "Root")]
    assert load_order(["A", "B", "Root", "C"], edges) == ["Root", "C", "A", "B"]


def test_duplicate_edges_counted_once():
    edges = [GraphEdge("Child", "Parent"), GraphEdge("Child", "Parent", MASTER_DETAIL)]
    assert load_order(["Child", "Parent"], edges) == ["Parent", "Child"]
