"""Full-screen dashboard: state, input, layout, rendering and workflows."""
