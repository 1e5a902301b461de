"""Cross-cutting helpers shared by scout components."""
